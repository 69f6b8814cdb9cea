#!/usr/bin/env python3
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from configs.settings import SectionDefinition
from utils.change_models import ChangeRecord

logger = logging.getLogger(__name__)

# Ordered: the first matching rule decides. Keyword or emoji in the display name.
_NAME_TYPE_RULES = [
	(("feature", "🚀"), "feature"),
	(("fix", "🛠"), "fix"),
	(("performance", "⚡"), "performance"),
	(("security", "🔒"), "security"),
	(("doc", "📚"), "docs"),
	(("chore", "📦"), "chore"),
]


def section_to_change_type(section_name: str) -> str:
	"""Infer the change type a section collects from its display name."""
	name = (section_name or "").lower()
	for needles, change_type in _NAME_TYPE_RULES:
		if any(n in name for n in needles):
			return change_type
	return "other"


def labels_match(labels: Sequence[str], tokens: Sequence[str]) -> bool:
	"""True if any label contains any token, case-insensitively."""
	for label in labels or []:
		if not label:
			continue
		low = label.lower()
		for token in tokens or []:
			if token and token.lower() in low:
				return True
	return False


@dataclass
class CategorizedChanges:
	# section name -> records in that section, capped for rendering
	sections: Dict[str, List[ChangeRecord]]
	unmatched: List[ChangeRecord]
	# record id -> section name, uncapped
	assignments: Dict[str, str] = field(default_factory=dict)
	# record id -> "label" | "type"
	match_reasons: Dict[str, str] = field(default_factory=dict)


class Categorizer:
	"""Assigns each change record to exactly one configured section or to unmatched."""

	def __init__(self, sections: Sequence[SectionDefinition], max_items_per_section: Optional[int] = None) -> None:
		self.sections = list(sections)
		self.max_items_per_section = max_items_per_section
		self._section_types = {s.name: section_to_change_type(s.name) for s in self.sections}

	def match(self, record: ChangeRecord) -> Optional[SectionDefinition]:
		section, _ = self._match_with_reason(record)
		return section

	def _match_with_reason(self, record: ChangeRecord):
		for section in self.sections:
			if labels_match(record.labels, section.labels):
				return section, "label"
		for section in self.sections:
			section_type = self._section_types[section.name]
			if section_type != "other" and record.type == section_type:
				return section, "type"
		return None, None

	def categorize(self, records: Sequence[ChangeRecord]) -> CategorizedChanges:
		sections: Dict[str, List[ChangeRecord]] = {s.name: [] for s in self.sections}
		unmatched: List[ChangeRecord] = []
		assignments: Dict[str, str] = {}
		reasons: Dict[str, str] = {}
		for record in records:
			section, reason = self._match_with_reason(record)
			if section is None:
				unmatched.append(record)
				continue
			sections[section.name].append(record)
			assignments[record.id] = section.name
			reasons[record.id] = reason
		cap = self.max_items_per_section
		if cap:
			for name, items in sections.items():
				if len(items) > cap:
					logger.debug(f"Capping section {name!r}: {len(items)} -> {cap} items")
					sections[name] = items[:cap]
		logger.info(
			f"Categorized {len(records)} changes: "
			f"{len(assignments)} matched, {len(unmatched)} unmatched"
		)
		return CategorizedChanges(sections=sections, unmatched=unmatched, assignments=assignments, match_reasons=reasons)


def section_summary(categorized: CategorizedChanges) -> Dict[str, int]:
	return {name: len(items) for name, items in categorized.sections.items()}


def quality_warnings(records: Sequence[ChangeRecord], categorized: CategorizedChanges) -> List[str]:
	"""Soft checks on a categorization run. Never blocks the pipeline."""
	warnings: List[str] = []
	if not records:
		warnings.append("No changes found to normalize")
		return warnings
	ratio = len(categorized.unmatched) / len(records)
	if ratio > 0.5:
		warnings.append(f"High ratio of unmatched changes: {round(ratio * 100)}%")
	for record in records:
		if not record.id or not record.title:
			warnings.append("Invalid change data: missing id or title")
			break
	return warnings
