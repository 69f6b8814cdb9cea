#!/usr/bin/env python3
import json
from typing import Type
from pydantic import BaseModel


def to_json_schema(model_cls: Type[BaseModel]) -> dict:
	"""Return JSON Schema for a Pydantic v2 model class.

	Injected into the generation request so the service answers in shape.
	"""
	return model_cls.model_json_schema()


def compact_schema(model_cls: Type[BaseModel]) -> str:
	return json.dumps(to_json_schema(model_cls), separators=(",", ":"), ensure_ascii=False)
