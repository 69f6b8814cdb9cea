#!/usr/bin/env python3
"""Turn raw generation output into a ReleaseDocument.

Two independent strategies, each returning None when it finds nothing
usable: `parse_structured` (a JSON object somewhere in the text) and
`parse_semi_structured` (markdown headings and bullets). Neither invents a
title or summary; validation decides whether the result is acceptable.
"""
from __future__ import annotations

import json
import re
from typing import List, Optional, Tuple

from pydantic import ValidationError

from utils.change_models import DeveloperNote, ReleaseDocument, ReleaseItem, ReleaseSection, section_id_for

_DOCUMENT_KEYS = {"title", "releaseTitle", "release_title", "sections", "summary", "developerNotes", "developer_notes"}


# --- Private helpers ---

def _strip_fences(text: str) -> str:
	return re.sub(r"```[a-zA-Z]*\n|```", "", text)


def _remove_control_chars(text: str) -> str:
	return re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F]", " ", text)


def _largest_braced_region(text: str) -> Optional[str]:
	stack: List[int] = []
	best = None
	best_len = 0
	for i, ch in enumerate(text):
		if ch == '{':
			stack.append(i)
		elif ch == '}' and stack:
			start = stack.pop()
			cand = text[start:i+1]
			if len(cand) > best_len:
				best = cand
				best_len = len(cand)
	return best


def _fix_trailing_commas(s: str) -> str:
	return re.sub(r",\s*([}\]])", r"\1", s)


def _smart_quotes(s: str) -> str:
	return s.replace("“", '"').replace("”", '"').replace("’", "'")


# --- Structured strategy ---

def extract_json_objects(raw_text: str) -> List[str]:
	"""Return candidate JSON object strings found in raw_text, most-likely first."""
	if not raw_text:
		return []
	text = _remove_control_chars(_strip_fences(raw_text))
	cands: List[str] = []
	largest = _largest_braced_region(text)
	if largest:
		cands.append(largest)
	first = text.find('{')
	last = text.rfind('}')
	if first != -1 and last != -1 and last > first:
		frag = text[first:last+1]
		if frag not in cands:
			cands.append(frag)
	return cands


def minimal_json_repairs(s: str) -> str:
	"""Apply minimal, safe repairs without inventing content."""
	s = _smart_quotes(s)
	s = _fix_trailing_commas(s)
	return s.strip()


def parse_structured(raw_text: str) -> Optional[ReleaseDocument]:
	for cand in extract_json_objects(raw_text):
		try:
			data = json.loads(minimal_json_repairs(cand))
		except json.JSONDecodeError:
			continue
		if not isinstance(data, dict) or not (_DOCUMENT_KEYS & set(data)):
			continue
		try:
			return ReleaseDocument.model_validate(data)
		except ValidationError:
			continue
	return None


# --- Semi-structured strategy ---

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
_BULLET_RE = re.compile(r"^[-*+]\s+(.*)$")
_SUB_BULLET_RE = re.compile(r"^\s{2,}[-*+]\s+(.*)$")
_SUMMARY_RE = re.compile(r"^(?:\*\*Summary:?\*\*:?|Summary:)\s*(.*)$", re.IGNORECASE)
_PR_URL_RE = re.compile(r"https?://\S+/pull/\d+")
_PR_NUM_RE = re.compile(r"#(\d+)")
_NOTE_PREFIXES: Tuple[Tuple[str, str], ...] = (
	("breaking", "breaking"),
	("migration", "migration"),
	("deprecat", "deprecation"),
	("note", "info"),
)


def _headings(lines: List[str]) -> List[Tuple[int, int, str]]:
	out = []
	for idx, line in enumerate(lines):
		m = _HEADING_RE.match(line)
		if m:
			out.append((idx, len(m.group(1)), m.group(2)))
	return out


def _note_from_bullet(text: str) -> DeveloperNote:
	head, sep, rest = text.partition(":")
	plain_head = re.sub(r"[^a-z]", "", head.lower())
	for marker, note_type in _NOTE_PREFIXES:
		if sep and marker in plain_head:
			desc = rest.strip().lstrip("*").strip()
			return DeveloperNote(type=note_type, desc=desc)
	return DeveloperNote(type="info", desc=text.strip())


def _item_from_bullet(text: str, fallback_id: str) -> ReleaseItem:
	url = _PR_URL_RE.search(text)
	num = _PR_NUM_RE.search(text)
	item_id = f"#{num.group(1)}" if num else fallback_id
	return ReleaseItem(id=item_id, short=text.strip(), pr=url.group(0) if url else None)


def parse_semi_structured(raw_text: str) -> Optional[ReleaseDocument]:
	if not raw_text or not raw_text.strip():
		return None
	lines = _strip_fences(raw_text).splitlines()
	heads = _headings(lines)
	title = ""
	title_idx = -1
	if heads:
		first_idx, first_level, first_text = heads[0]
		if any(level > first_level for _, level, _ in heads[1:]):
			title, title_idx = first_text, first_idx

	sections: List[ReleaseSection] = []
	notes: List[DeveloperNote] = []
	summary = ""
	current: Optional[ReleaseSection] = None
	in_notes = False
	for idx, line in enumerate(lines):
		if idx == title_idx:
			continue
		h = _HEADING_RE.match(line)
		if h:
			text = h.group(2)
			in_notes = "developer notes" in text.lower()
			current = None
			if not in_notes:
				current = ReleaseSection(id=section_id_for(text), title=text)
				sections.append(current)
			continue
		s = _SUMMARY_RE.match(line.strip())
		if s:
			summary = s.group(1).strip()
			continue
		sub = _SUB_BULLET_RE.match(line)
		if sub and in_notes and notes:
			head, sep, rest = sub.group(1).partition(":")
			if sep and head.strip().lower() == "migration":
				notes[-1].migration = rest.strip()
			continue
		b = _BULLET_RE.match(line)
		if not b:
			continue
		if in_notes:
			notes.append(_note_from_bullet(b.group(1)))
		elif current is not None:
			current.items.append(_item_from_bullet(b.group(1), f"{current.id}-{len(current.items) + 1}"))

	sections = [sec for sec in sections if sec.items]
	if not sections and not summary:
		return None
	return ReleaseDocument(title=title, sections=sections, developer_notes=notes, summary=summary)


def parse_response(raw_text: str) -> Optional[ReleaseDocument]:
	"""Try each strategy in priority order; the first result wins."""
	for strategy in (parse_structured, parse_semi_structured):
		doc = strategy(raw_text)
		if doc is not None:
			return doc
	return None
