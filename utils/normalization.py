#!/usr/bin/env python3
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from configs.settings import SectionDefinition
from utils.categorizer import labels_match, section_to_change_type
from utils.change_models import ChangeRecord, SourceReferences, coerce_change_type

logger = logging.getLogger(__name__)

_CONVENTIONAL_RE = re.compile(r"^(\w+)(?:\(([^)]+)\))?(!)?:\s*")
_TRAILER_RE = re.compile(
	r"^(?:Signed-off-by|Co-authored-by|Reviewed-by|Acked-by|Tested-by|Reported-by|Change-Id):\s+.*$",
	re.MULTILINE | re.IGNORECASE,
)
_ISSUE_REF_RE = re.compile(r"#(\d+)")

_SCALAR_FIELDS = ("title", "body", "author", "scope", "created_at", "origin")


def _is_empty(value) -> bool:
	return value is None or (isinstance(value, str) and not value.strip())


def _union(a: Iterable[str], b: Iterable[str]) -> List[str]:
	# dedupe, keep first-seen order
	return list(dict.fromkeys([*(a or []), *(b or [])]))


def merge_key(record: ChangeRecord) -> str:
	if record.pr_number:
		return f"pr-{record.pr_number}"
	return record.commit_sha or record.id


def _merge_source_refs(existing: Optional[SourceReferences], incoming: Optional[SourceReferences]) -> Optional[SourceReferences]:
	if existing is None:
		return incoming
	if incoming is None:
		return existing
	data = existing.model_dump()
	for key, value in incoming.model_dump().items():
		if not _is_empty(value) and value != 0:
			data[key] = value
	return SourceReferences(**data)


def merge_records(existing: ChangeRecord, incoming: ChangeRecord) -> ChangeRecord:
	"""Merge two records sharing a merge key.

	Sets are unioned; for scalars the incoming non-empty value wins, so a
	field only the existing record carries is never lost.
	"""
	data = existing.model_dump()
	for name in _SCALAR_FIELDS:
		value = getattr(incoming, name)
		if not _is_empty(value):
			data[name] = value
	if not _is_empty(incoming.id):
		data["id"] = incoming.id
	if incoming.type != "other" or existing.type == "other":
		data["type"] = incoming.type
	data["labels"] = _union(existing.labels, incoming.labels)
	data["linked_references"] = _union(existing.linked_references, incoming.linked_references)
	refs = _merge_source_refs(existing.source_references, incoming.source_references)
	data["source_references"] = refs.model_dump() if refs else None
	return ChangeRecord.model_validate(data)


def deduplicate(records: Sequence[ChangeRecord]) -> List[ChangeRecord]:
	"""Collapse records describing the same change; output keeps first-seen key order."""
	merged: Dict[str, ChangeRecord] = {}
	for record in records:
		key = merge_key(record)
		current = merged.get(key)
		merged[key] = record if current is None else merge_records(current, record)
	if len(merged) < len(records):
		logger.debug(f"Deduplicated {len(records)} records into {len(merged)}")
	return list(merged.values())


def extract_issue_refs(text: Optional[str]) -> List[str]:
	if not text:
		return []
	return list(dict.fromkeys(f"#{n}" for n in _ISSUE_REF_RE.findall(text)))


def clean_title(title: str) -> str:
	cleaned = _CONVENTIONAL_RE.sub("", title or "", count=1)
	return cleaned[:1].upper() + cleaned[1:]


def strip_trailers(body: Optional[str]) -> Optional[str]:
	if not body:
		return None
	stripped = _TRAILER_RE.sub("", body).strip()
	return stripped or None


def extract_scope(record: ChangeRecord) -> Optional[str]:
	m = _CONVENTIONAL_RE.match(record.title or "")
	if m and m.group(2):
		return m.group(2)
	for label in record.labels:
		if "area:" in label or "scope:" in label:
			scope = label.split(":", 1)[1].strip()
			if scope:
				return scope
	return record.scope


def refine_change_type(record: ChangeRecord, sections: Sequence[SectionDefinition]) -> str:
	if record.labels:
		for section in sections:
			if labels_match(record.labels, section.labels):
				inferred = section_to_change_type(section.name)
				if inferred != "other":
					return inferred
				break
	return record.type


def clean_record(record: ChangeRecord, sections: Sequence[SectionDefinition]) -> ChangeRecord:
	return record.model_copy(
		update={
			"type": refine_change_type(record, sections),
			"scope": extract_scope(record),
			"title": clean_title(record.title),
			"body": strip_trailers(record.body),
			"linked_references": _union(record.linked_references, extract_issue_refs(record.body)),
		}
	)


def normalize_changes(records: Sequence[ChangeRecord], sections: Sequence[SectionDefinition]) -> List[ChangeRecord]:
	"""Deduplicate, then clean every surviving record."""
	return [clean_record(r, sections) for r in deduplicate(records)]


# --- Collection-side helpers ---

_COMMIT_TYPE_MAP = {
	"feat": "feature",
	"feature": "feature",
	"fix": "fix",
	"bugfix": "fix",
	"perf": "performance",
	"performance": "performance",
	"docs": "docs",
	"doc": "docs",
	"documentation": "docs",
	"chore": "chore",
	"security": "security",
	"sec": "security",
}


def record_from_commit_message(
	sha: str,
	message: str,
	*,
	body: Optional[str] = None,
	author: Optional[str] = None,
	committed_at: Optional[datetime] = None,
) -> ChangeRecord:
	"""Build a record from a commit subject, honoring conventional-commit syntax."""
	subject = (message or "").splitlines()[0].strip() if message else ""
	m = _CONVENTIONAL_RE.match(subject)
	change_type = _COMMIT_TYPE_MAP.get(m.group(1).lower(), "other") if m else "other"
	return ChangeRecord(
		id=sha,
		type=change_type,
		scope=m.group(2) if m else None,
		title=subject[m.end():] if m else subject,
		body=(body or "").strip() or None,
		author=author,
		linked_references=extract_issue_refs(body),
		source_references=SourceReferences(commit_sha=sha),
		created_at=committed_at,
		origin="commit",
	)


def infer_change_type(title: str, labels: Sequence[str]) -> str:
	"""Label-first, then title-keyword inference for PR and issue records."""
	for label in labels or []:
		low = label.lower()
		if low in ("feature", "feat", "enhancement"):
			return "feature"
		if low in ("bug", "fix", "bugfix"):
			return "fix"
		if low in ("performance", "perf"):
			return "performance"
		if low in ("documentation", "docs", "doc"):
			return "docs"
		if low in ("security", "sec"):
			return "security"
		if low in ("chore", "maintenance"):
			return "chore"
	t = (title or "").lower()
	if "feat" in t or "add" in t or "implement" in t:
		return "feature"
	if "fix" in t or "bug" in t or "resolve" in t:
		return "fix"
	if "perf" in t or "optimize" in t:
		return "performance"
	if "doc" in t or "readme" in t:
		return "docs"
	if "security" in t or "vulnerab" in t:
		return "security"
	return coerce_change_type("other")
