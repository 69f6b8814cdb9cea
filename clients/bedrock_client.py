#!/usr/bin/env python3
from __future__ import annotations

import json
import logging
import math
import random
import time
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from configs.settings import BedrockSettings

logger = logging.getLogger(__name__)

CONTINUE_PROMPT = "Continue exactly where you stopped. Do not repeat anything."


class BedrockError(Exception):
	def __init__(self, message: str, code: str = "UNKNOWN") -> None:
		super().__init__(message)
		self.code = code


def _classify_client_error(e: ClientError) -> str:
	err = e.response.get("Error", {}) if hasattr(e, "response") else {}
	status = err.get("Code", "") or err.get("StatusCode", "")
	msg = err.get("Message", "")
	low = (str(status) + " " + str(msg)).lower()
	if "throttl" in low or "429" in low or "rate" in low:
		return "RATE_LIMIT"
	if "unauthorized" in low or "accessdenied" in low or "403" in low or "401" in low:
		return "UNAUTHORIZED"
	return "UNKNOWN"


class BedrockClient:
	"""Generation service on AWS Bedrock (Anthropic messages payload).

	`complete()` satisfies the orchestrator's service contract: it returns the
	raw text of the reply or raises BedrockError.
	"""

	def __init__(self, settings: BedrockSettings, runtime: Any = None) -> None:
		self.settings = settings
		self.model_id = settings.model_id
		self.max_output_tokens = int(settings.max_output_tokens)
		self.temperature = settings.temperature
		self._tokens_per_char = float(settings.tokens_per_char)
		self._hard_total_cap = 100000  # combined prompt+response tokens
		self._global_cap_s = 300
		self._runtime = runtime or boto3.client(
			"bedrock-runtime",
			region_name=settings.region_name,
			config=BotoConfig(read_timeout=settings.timeout_s, retries={"max_attempts": 1}),
		)

	def _estimate_tokens(self, text: str) -> int:
		if not text:
			return 0
		return math.ceil(len(text) / max(1.0, self._tokens_per_char))

	def _invoke(self, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
		body = {
			"anthropic_version": "bedrock-2023-05-31",
			"max_tokens": self.max_output_tokens,
			"temperature": self.temperature,
			"messages": messages,
		}
		response = self._runtime.invoke_model(
			modelId=self.model_id,
			contentType="application/json",
			accept="application/json",
			body=json.dumps(body).encode("utf-8"),
		)
		payload = response.get("body")
		if hasattr(payload, "read"):
			payload = payload.read()
		if isinstance(payload, (bytes, bytearray)):
			payload = payload.decode("utf-8", errors="ignore")
		try:
			return json.loads(payload)
		except (TypeError, ValueError) as e:
			raise BedrockError(f"Unreadable Bedrock response: {e}", code="UNKNOWN") from e

	def _invoke_with_retry(self, messages: List[Dict[str, Any]], started: float) -> Dict[str, Any]:
		exc: Optional[Exception] = None
		code = "UNKNOWN"
		for attempt in range(3):
			if (time.monotonic() - started) >= self._global_cap_s:
				raise BedrockError("Global timeout exceeded", code="TIMEOUT")
			try:
				return self._invoke(messages)
			except BedrockError:
				raise
			except ReadTimeoutError as e:
				exc, code = e, "TIMEOUT"
			except EndpointConnectionError as e:
				exc, code = e, "NETWORK"
			except ClientError as e:
				exc, code = e, _classify_client_error(e)
			# backoff if transient
			if code in ("TIMEOUT", "NETWORK", "RATE_LIMIT") and attempt < 2:
				backoff = (2 ** attempt) + random.random()
				logger.warning(f"Bedrock {code} on attempt {attempt + 1}; retrying in {backoff:.1f}s")
				time.sleep(min(backoff, 2.5))
				continue
			break
		raise BedrockError(f"Bedrock error: {exc}", code=code)

	@staticmethod
	def _text_of(reply: Dict[str, Any]) -> str:
		parts = reply.get("content") or []
		return "".join(p.get("text", "") for p in parts if isinstance(p, dict) and p.get("type") == "text")

	def complete(self, prompt: str, *, max_turns: int = 1) -> str:
		"""Send one request; when the reply hits the token limit, ask it to
		continue, up to `max_turns` exchanges in total."""
		started = time.monotonic()
		tokens_est = self._estimate_tokens(prompt) + self.max_output_tokens * max(1, max_turns)
		if tokens_est > self._hard_total_cap:
			raise BedrockError("Prompt exceeds hard token cap", code="UNKNOWN")
		messages: List[Dict[str, Any]] = [{"role": "user", "content": [{"type": "text", "text": prompt}]}]
		chunks: List[str] = []
		for turn in range(max(1, max_turns)):
			reply = self._invoke_with_retry(messages, started)
			text = self._text_of(reply)
			chunks.append(text)
			if reply.get("stop_reason") != "max_tokens" or turn + 1 >= max_turns:
				break
			logger.debug(f"Reply truncated at turn {turn + 1}; requesting continuation")
			messages += [
				{"role": "assistant", "content": [{"type": "text", "text": text}]},
				{"role": "user", "content": [{"type": "text", "text": CONTINUE_PROMPT}]},
			]
		result = "".join(chunks)
		if not result.strip():
			raise BedrockError("Empty Bedrock response", code="UNKNOWN")
		return result
