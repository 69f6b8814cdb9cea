#!/usr/bin/env python3
from __future__ import annotations

import json
import re
from importlib import resources
from typing import Any, Dict, List, Optional, Sequence, Tuple

from configs.settings import GenerationSettings, SectionDefinition
from utils.change_models import ChangeRecord, ReleaseDocument
from utils.schema_utils import compact_schema
from utils.tone_manager import ToneManager, tone_instructions

PROMPTS_PACKAGE = "utils"

_PLACEHOLDER_RE = re.compile(r"\{\{ (\w+) \}\}")


def _render_template(template: str, mapping: Dict[str, str]) -> str:
	# one pass, so placeholders inside substituted values stay literal
	return _PLACEHOLDER_RE.sub(lambda m: mapping.get(m.group(1), m.group(0)), template)


def _load_template(name: str) -> str:
	return (resources.files(PROMPTS_PACKAGE) / "prompts" / name).read_text(encoding="utf-8")


def _records_json(records: Sequence[ChangeRecord]) -> str:
	payload = [r.model_dump(mode="json", exclude_none=True) for r in records]
	return json.dumps(payload, indent=2, ensure_ascii=False)


def build_generation_prompt(
	records: Sequence[ChangeRecord],
	sections: List[SectionDefinition],
	version: Optional[str],
	settings: GenerationSettings,
	*,
	tone_manager: Optional[ToneManager] = None,
) -> Tuple[str, Dict[str, Any]]:
	"""Build the full generation request.

	Returns the prompt text and meta info for logging. Never raises for
	missing tone files; the default tone is used instead.
	"""
	tones = tone_manager or ToneManager()
	tone = tones.get_tone(settings.tone_preset, settings.tone_file)
	sections_json = json.dumps([s.model_dump() for s in sections], indent=2, ensure_ascii=False)
	notes_hint = (
		"list breaking changes, migrations and deprecations; empty list if none"
		if settings.include_developer_notes
		else "always an empty list"
	)
	mapping = {
		"tone_instructions": tone_instructions(tone),
		"locale": settings.locale,
		"version": version or "the next version",
		"sections_json": sections_json,
		"change_count": str(len(records)),
		"changes_json": _records_json(records),
		"json_schema": compact_schema(ReleaseDocument),
		"developer_notes_hint": notes_hint,
	}
	prompt = _render_template(_load_template("changelog.prompt"), mapping)
	meta = {
		"version": version,
		"records": len(records),
		"sections": len(sections),
		"tone": tone.name,
		"prompt_len": len(prompt),
	}
	return prompt, meta


def build_simplified_prompt(records: Sequence[ChangeRecord], version: Optional[str], *, limit: int = 10) -> str:
	mapping = {
		"version": version or "next version",
		"title": version or "Next Release",
		"changes_json": _records_json(list(records)[:limit]),
	}
	return _render_template(_load_template("simplified.prompt"), mapping)
