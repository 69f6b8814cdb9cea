#!/usr/bin/env python3
"""Generation orchestrator: external generation with validation, one
simplified retry, and a deterministic fallback that always succeeds.

	BUILD_PROMPT -> CALL_EXTERNAL -> VALIDATE -> ACCEPT
	                                          -> RETRY_SIMPLIFIED -> VALIDATE_RETRY -> ACCEPT | ACCEPT_UNVALIDATED
	             (any service error)          -> DETERMINISTIC_FALLBACK -> ACCEPT

`generate()` never raises; the outcome says which path produced the document.
"""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Union

from langsmith.run_helpers import traceable

from cache.cache_backend import CacheBackend, request_key
from configs.settings import FormatSettings, GenerationSettings
from utils.categorizer import Categorizer
from utils.change_models import ChangeRecord, ReleaseDocument, ReleaseItem, ReleaseSection, section_id_for
from utils.circuit_breaker import CircuitBreaker
from utils.json_sanitizer import parse_response
from utils.metrics import Timer, incr
from utils.prompt_builder import build_generation_prompt, build_simplified_prompt
from utils.tone_manager import ToneManager
from utils.validation import validate_release_document

logger = logging.getLogger(__name__)

OTHER_SECTION_ID = "other"
OTHER_SECTION_TITLE = "Other Changes"


class GenerationState(str, Enum):
	BUILD_PROMPT = "BUILD_PROMPT"
	CALL_EXTERNAL = "CALL_EXTERNAL"
	VALIDATE = "VALIDATE"
	RETRY_SIMPLIFIED = "RETRY_SIMPLIFIED"
	VALIDATE_RETRY = "VALIDATE_RETRY"
	ACCEPT = "ACCEPT"
	ACCEPT_UNVALIDATED = "ACCEPT_UNVALIDATED"
	DETERMINISTIC_FALLBACK = "DETERMINISTIC_FALLBACK"


class GenerationService(Protocol):
	def complete(self, prompt: str, *, max_turns: int = 1) -> str:
		...


class GenerationUnavailable(Exception):
	def __init__(self, message: str, code: str = "UNAVAILABLE") -> None:
		super().__init__(message)
		self.code = code


@dataclass(frozen=True)
class Accepted:
	document: ReleaseDocument
	validated: bool
	elapsed_s: float = 0.0
	states: List[GenerationState] = field(default_factory=list)

	@property
	def fallback_used(self) -> bool:
		return False


@dataclass(frozen=True)
class FellBack:
	document: ReleaseDocument
	reason: str
	elapsed_s: float = 0.0
	states: List[GenerationState] = field(default_factory=list)

	@property
	def validated(self) -> bool:
		return False

	@property
	def fallback_used(self) -> bool:
		return True


GenerationOutcome = Union[Accepted, FellBack]


def _plural(n: int, one: str, many: str) -> str:
	return one if n == 1 else many


def deterministic_document(
	records: Sequence[ChangeRecord],
	version: Optional[str],
	format_settings: FormatSettings,
) -> ReleaseDocument:
	"""Build a release document from records alone; valid by construction."""
	categorized = Categorizer(format_settings.sections, format_settings.max_items_per_section).categorize(records)

	def _items(group: Sequence[ChangeRecord]) -> List[ReleaseItem]:
		return [
			ReleaseItem(
				id=r.id or r.display_reference() or "unknown",
				short=f"{r.title or 'Untitled change'} ({r.display_reference() or 'no reference'})",
				pr=r.pr_url,
			)
			for r in group
		]

	sections: List[ReleaseSection] = []
	for definition in format_settings.sections:
		group = categorized.sections.get(definition.name) or []
		if group:
			sections.append(ReleaseSection(id=section_id_for(definition.name), title=definition.name, items=_items(group)))
	if categorized.unmatched or not sections:
		sections.append(ReleaseSection(id=OTHER_SECTION_ID, title=OTHER_SECTION_TITLE, items=_items(categorized.unmatched)))

	n, m = len(records), len(sections)
	return ReleaseDocument(
		title=f"{version} Release" if version else "Release Notes",
		sections=sections,
		summary=(
			f"This release includes {n} {_plural(n, 'change', 'changes')} "
			f"across {m} {_plural(m, 'category', 'categories')}."
		),
	)


class GenerationOrchestrator:
	def __init__(
		self,
		service: Optional[GenerationService],
		format_settings: FormatSettings,
		generation_settings: GenerationSettings,
		*,
		cache: Optional[CacheBackend] = None,
		breaker: Optional[CircuitBreaker] = None,
		kill_switch_path: Optional[str] = None,
		tone_manager: Optional[ToneManager] = None,
	) -> None:
		self.service = service
		self.format_settings = format_settings
		self.generation_settings = generation_settings
		self.cache = cache
		self.breaker = breaker
		self.kill_switch_path = kill_switch_path
		self.tone_manager = tone_manager or ToneManager()

	@traceable(name="build_prompt")
	def _build_prompt(self, records: Sequence[ChangeRecord], version: Optional[str]) -> str:
		prompt, meta = build_generation_prompt(
			records,
			self.format_settings.sections,
			version,
			self.generation_settings,
			tone_manager=self.tone_manager,
		)
		logger.debug(f"Built generation prompt: {meta}")
		return prompt

	@traceable(name="call_external")
	def _call(self, prompt: str, *, op: str) -> str:
		if self.service is None:
			raise GenerationUnavailable("No generation service configured", code="DISABLED")
		if self.kill_switch_path and os.path.exists(self.kill_switch_path):
			raise GenerationUnavailable("Emergency kill switch active", code="KILL_SWITCH")
		if self.breaker is not None and not self.breaker.allow():
			raise GenerationUnavailable("Circuit open for generation service", code="CIRCUIT_OPEN")
		try:
			with Timer("generation.request", op=op):
				response = self.service.complete(prompt, max_turns=self.generation_settings.max_turns)
		except Exception:
			if self.breaker is not None:
				self.breaker.record_failure()
			raise
		if self.breaker is not None:
			self.breaker.record_success()
		return response

	def _cache_key(self, prompt: str) -> str:
		return request_key(prompt, model_id=str(getattr(self.service, "model_id", "")))

	def _cached(self, prompt: str) -> Optional[str]:
		if self.cache is None:
			return None
		hit = self.cache.get(self._cache_key(prompt))
		incr("generation.cache", hit=hit is not None)
		return hit

	def _finish_doc(self, doc: ReleaseDocument) -> ReleaseDocument:
		if not self.generation_settings.include_developer_notes and doc.developer_notes:
			return doc.model_copy(update={"developer_notes": []})
		return doc

	@traceable(name="generate_release_document")
	def generate(self, records: Sequence[ChangeRecord], version: Optional[str] = None) -> GenerationOutcome:
		started = time.monotonic()
		states: List[GenerationState] = []

		def _elapsed() -> float:
			return time.monotonic() - started

		def _fallback(reason: str) -> FellBack:
			states.append(GenerationState.DETERMINISTIC_FALLBACK)
			doc = deterministic_document(records, version, self.format_settings)
			states.append(GenerationState.ACCEPT)
			logger.warning(f"Using deterministic release notes ({reason})")
			incr("generation.outcome", outcome="fallback", reason=reason)
			return FellBack(document=doc, reason=reason, elapsed_s=_elapsed(), states=states)

		try:
			states.append(GenerationState.BUILD_PROMPT)
			prompt = self._build_prompt(records, version)

			states.append(GenerationState.CALL_EXTERNAL)
			raw = self._cached(prompt)
			from_cache = raw is not None
			if raw is None:
				try:
					raw = self._call(prompt, op="full")
				except Exception as e:
					code = getattr(e, "code", type(e).__name__)
					logger.warning(f"Generation service failed ({code}): {e}")
					return _fallback(f"service_error:{code}")

			states.append(GenerationState.VALIDATE)
			doc = parse_response(raw)
			if doc is not None:
				ok, errors = validate_release_document(doc)
				if ok:
					if self.cache is not None and not from_cache:
						self.cache.put(self._cache_key(prompt), raw)
					states.append(GenerationState.ACCEPT)
					incr("generation.outcome", outcome="accepted")
					return Accepted(document=self._finish_doc(doc), validated=True, elapsed_s=_elapsed(), states=states)
				logger.info(f"Generated document failed validation: {'; '.join(errors)}")
			else:
				logger.info("Generated response could not be parsed")

			states.append(GenerationState.RETRY_SIMPLIFIED)
			retry_prompt = build_simplified_prompt(records, version, limit=self.generation_settings.retry_record_limit)
			try:
				retry_raw = self._call(retry_prompt, op="retry")
			except Exception as e:
				code = getattr(e, "code", type(e).__name__)
				logger.warning(f"Simplified retry failed ({code}): {e}")
				return _fallback(f"retry_error:{code}")

			states.append(GenerationState.VALIDATE_RETRY)
			retry_doc = parse_response(retry_raw)
			if retry_doc is None:
				return _fallback("retry_unparseable")
			ok, errors = validate_release_document(retry_doc)
			if ok:
				states.append(GenerationState.ACCEPT)
				incr("generation.outcome", outcome="accepted_retry")
				return Accepted(document=self._finish_doc(retry_doc), validated=True, elapsed_s=_elapsed(), states=states)
			logger.warning(f"Accepting unvalidated retry output: {'; '.join(errors)}")
			states.append(GenerationState.ACCEPT_UNVALIDATED)
			incr("generation.outcome", outcome="accepted_unvalidated")
			return Accepted(document=self._finish_doc(retry_doc), validated=False, elapsed_s=_elapsed(), states=states)
		except Exception as e:
			logger.exception(f"Unexpected error during generation: {e}")
			return _fallback(f"internal_error:{type(e).__name__}")
