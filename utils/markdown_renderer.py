#!/usr/bin/env python3
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import List, Optional

from utils.change_models import DeveloperNote, ReleaseDocument, ReleaseItem

NOTE_PREFIXES = {
	"breaking": "⚠️ **BREAKING**: ",
	"migration": "📝 **Migration**: ",
	"deprecation": "🗑️ **Deprecated**: ",
	"info": "💡 **Note**: ",
}

_PR_NUMBER_RE = re.compile(r"/pull/(\d+)")


def extract_pr_reference(pr_url: Optional[str]) -> Optional[str]:
	"""'https://github.com/o/r/pull/345' -> '#345'."""
	if not pr_url:
		return None
	match = _PR_NUMBER_RE.search(pr_url)
	return f"#{match.group(1)}" if match else None


def _release_date(release_date: Optional[date]) -> str:
	return (release_date or datetime.now(timezone.utc).date()).isoformat()


def item_line(item: ReleaseItem, *, include_pr_links: bool = True) -> str:
	line = f"- {item.short}"
	if item.pr and include_pr_links and item.pr not in item.short and "#" not in item.short:
		ref = extract_pr_reference(item.pr)
		if ref:
			line += f" ({ref})"
	if item.why:
		line += f" - {item.why}"
	return line


def note_line(note: DeveloperNote) -> str:
	text = NOTE_PREFIXES.get(note.type, NOTE_PREFIXES["info"]) + note.desc
	if note.migration:
		text += f"\n  - Migration: {note.migration}"
	return f"- {text}"


def render_version_block(
	doc: ReleaseDocument,
	version: Optional[str] = None,
	*,
	release_date: Optional[date] = None,
	include_pr_links: bool = True,
) -> str:
	"""Render one version block, ending with a single newline."""
	heading = f"{version} — {_release_date(release_date)}" if version else (doc.title or "Release Notes")
	lines: List[str] = [f"## {heading}", ""]
	for section in doc.sections:
		if not section.items:
			continue
		lines += [f"### {section.title}", ""]
		lines += [item_line(it, include_pr_links=include_pr_links) for it in section.items]
		lines.append("")
	if doc.developer_notes:
		lines += ["### Developer Notes", ""]
		lines += [note_line(n) for n in doc.developer_notes]
		lines.append("")
	if doc.summary:
		lines.append(f"**Summary:** {doc.summary}")
	while lines and not lines[-1].strip():
		lines.pop()
	return "\n".join(lines) + "\n"
