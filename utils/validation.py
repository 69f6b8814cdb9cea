#!/usr/bin/env python3
from __future__ import annotations

import re
from typing import List, Tuple

from configs.settings import ChangelogSettings
from utils.change_models import ReleaseDocument


class ValidationCode:
	OK = "OK"
	STRUCTURE = "STRUCTURE"
	FIELDS = "FIELDS"
	EMPTY = "EMPTY"


VALID_TONES = ("concise", "friendly", "formal", "detailed", "custom")
RECOMMENDED_PATTERNS = ("api_?key", "secret", "password", "token")


def validate_release_document(doc: ReleaseDocument) -> Tuple[bool, List[str]]:
	"""Check a parsed document is complete enough to render.

	Returns (is_valid, errors). Errors are short field paths, never content.
	"""
	errors: List[str] = []
	if not doc.title.strip():
		errors.append(f"{ValidationCode.FIELDS}: title is empty")
	if not doc.sections:
		errors.append(f"{ValidationCode.EMPTY}: no sections")
	if not doc.summary.strip():
		errors.append(f"{ValidationCode.FIELDS}: summary is empty")
	for i, section in enumerate(doc.sections):
		if not section.id.strip():
			errors.append(f"{ValidationCode.STRUCTURE}: sections[{i}].id is empty")
		if not section.title.strip():
			errors.append(f"{ValidationCode.STRUCTURE}: sections[{i}].title is empty")
		for j, item in enumerate(section.items):
			if not item.id.strip():
				errors.append(f"{ValidationCode.STRUCTURE}: sections[{i}].items[{j}].id is empty")
			if not item.short.strip():
				errors.append(f"{ValidationCode.STRUCTURE}: sections[{i}].items[{j}].short is empty")
	return not errors, errors


def validate_settings(settings: ChangelogSettings) -> Tuple[List[str], List[str]]:
	"""Return (errors, warnings) for a full settings bundle."""
	errors: List[str] = []
	warnings: List[str] = []

	fmt = settings.format
	if not fmt.changelog_path.strip():
		errors.append("Changelog path is required")
	for i, section in enumerate(fmt.sections):
		if not section.name.strip():
			errors.append(f"Section {i}: name is required")
	if fmt.max_items_per_section is not None and fmt.max_items_per_section < 1:
		errors.append("max_items_per_section must be a positive number")

	gen = settings.generation
	if gen.tone_preset not in VALID_TONES:
		errors.append(f"Invalid tone preset: {gen.tone_preset}. Must be one of: {', '.join(VALID_TONES)}")
	if gen.tone_preset == "custom" and not gen.tone_file:
		errors.append("Tone file is required when using custom tone preset")
	if gen.max_turns < 1:
		errors.append("max_turns must be at least 1")

	red = settings.redaction
	if red.trunc_body_to < 0:
		errors.append("trunc_body_to must be a non-negative number")
	for pattern in red.redact_patterns:
		try:
			re.compile(pattern)
		except re.error:
			warnings.append(f"Redaction pattern {pattern!r} is not a valid regex and will be matched literally")
	missing = [p for p in RECOMMENDED_PATTERNS if not any(p.lower() in q.lower() for q in red.redact_patterns)]
	if missing:
		warnings.append(f"Consider adding these common redaction patterns: {', '.join(missing)}")

	cache = settings.cache
	if cache.ttl_s < 0:
		errors.append("Cache TTL must be a non-negative number")
	elif cache.enabled and cache.ttl_s < 3600:
		warnings.append("Cache TTL is less than 1 hour. Consider increasing for better performance.")
	return errors, warnings
