#!/usr/bin/env python3
"""Privacy pass over change records.

Every text-bearing field is scrubbed independently. Matching only ever runs on
the text between existing redaction tokens, which keeps the pass idempotent.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence, Tuple

from configs.settings import RedactionSettings
from utils.change_models import ChangeRecord

logger = logging.getLogger(__name__)

RiskLevel = Literal["low", "medium", "high"]

REDACTED = "[REDACTED]"
REDACTED_EMAIL = "[REDACTED-EMAIL]"
REDACTED_HASH = "[REDACTED-HASH]"
REDACTED_PHONE = "[REDACTED-PHONE]"
REDACTED_IP = "[REDACTED-IP]"
ELLIPSIS = "..."

_TOKEN_RE = re.compile(r"(\[REDACTED(?:-(?:EMAIL|HASH|PHONE|IP))?\])")

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
HASH_RE = re.compile(r"\b[a-f0-9]{32,}\b", re.IGNORECASE)
PHONE_RE = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")
IP_RE = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")

SECRET_KEYWORDS = ("password", "token", "key", "secret", "credential", "auth")


def _sub_outside_tokens(pattern: re.Pattern, replacement: str, text: str) -> Tuple[str, int]:
	parts = _TOKEN_RE.split(text)
	total = 0
	# odd indexes hold the captured tokens
	for i in range(0, len(parts), 2):
		parts[i], n = pattern.subn(replacement, parts[i])
		total += n
	return "".join(parts), total


def _search_outside_tokens(pattern: re.Pattern, text: str) -> bool:
	return any(pattern.search(seg) for seg in _TOKEN_RE.split(text)[::2])


def truncate_text(text: str, limit: int) -> str:
	"""Cut to exactly `limit` characters including the ellipsis marker."""
	if limit <= 0 or len(text) <= limit:
		return text
	if limit <= len(ELLIPSIS):
		return ELLIPSIS[:limit]
	return text[: limit - len(ELLIPSIS)] + ELLIPSIS


@dataclass
class RedactionReport:
	total_changes: int = 0
	redacted_count: int = 0
	redacted_fields: List[str] = field(default_factory=list)
	suspicious_patterns: List[str] = field(default_factory=list)


@dataclass
class RedactionResult:
	redacted_changes: List[ChangeRecord]
	report: RedactionReport


@dataclass
class SuspiciousChange:
	change: ChangeRecord
	reasons: List[str]


@dataclass
class SensitivityReport:
	suspicious_changes: List[SuspiciousChange]
	overall_risk: RiskLevel


class Redactor:
	def __init__(self, settings: Optional[RedactionSettings] = None) -> None:
		self.settings = settings or RedactionSettings()
		self.patterns: List[re.Pattern] = []
		for source in self.settings.redact_patterns:
			try:
				self.patterns.append(re.compile(source, re.IGNORECASE))
			except re.error as e:
				# An unusable pattern must not stop the pass; escape it and match literally.
				logger.warning(f"Invalid redaction pattern {source!r} ({e}); matching it literally")
				self.patterns.append(re.compile(re.escape(source), re.IGNORECASE))
		self._detectors: List[Tuple[str, re.Pattern, str]] = []
		if self.settings.email_mask:
			self._detectors.append(("email", EMAIL_RE, REDACTED_EMAIL))
		if self.settings.detect_hashes:
			self._detectors.append(("hash", HASH_RE, REDACTED_HASH))
		if self.settings.detect_phones:
			self._detectors.append(("phone", PHONE_RE, REDACTED_PHONE))
		if self.settings.detect_ips:
			self._detectors.append(("ip", IP_RE, REDACTED_IP))

	def redact_text(self, text: str) -> Tuple[str, List[str]]:
		"""Return the scrubbed text and the pattern categories that fired."""
		fired: List[str] = []
		for pattern in self.patterns:
			text, n = _sub_outside_tokens(pattern, REDACTED, text)
			if n:
				fired.append(pattern.pattern)
		for name, pattern, token in self._detectors:
			text, n = _sub_outside_tokens(pattern, token, text)
			if n:
				fired.append(name)
		return text, fired

	def redact_change(self, change: ChangeRecord) -> Tuple[ChangeRecord, List[str], List[str]]:
		update = {}
		fields: List[str] = []
		patterns: List[str] = []

		title, fired = self.redact_text(change.title or "")
		if fired:
			update["title"] = title
			fields.append("title")
			patterns.extend(fired)

		if change.body:
			body, fired = self.redact_text(change.body)
			if fired:
				fields.append("body")
				patterns.extend(fired)
			truncated = truncate_text(body, self.settings.trunc_body_to)
			if truncated != body:
				fields.append("body (truncated)")
			if truncated != change.body:
				update["body"] = truncated

		if change.author:
			author, fired = self.redact_text(change.author)
			if fired:
				update["author"] = author
				fields.append("author")
				patterns.extend(fired)

		if change.labels:
			labels = []
			labels_fired: List[str] = []
			for label in change.labels:
				redacted, fired = self.redact_text(label)
				labels.append(redacted)
				labels_fired.extend(fired)
			if labels_fired:
				update["labels"] = labels
				fields.append("labels")
				patterns.extend(labels_fired)

		redacted = change.model_copy(update=update) if update else change
		return redacted, fields, patterns

	def redact_changes(self, changes: Sequence[ChangeRecord]) -> RedactionResult:
		out: List[ChangeRecord] = []
		fields_seen: List[str] = []
		patterns_seen: List[str] = []
		count = 0
		for change in changes:
			redacted, fields, patterns = self.redact_change(change)
			out.append(redacted)
			if fields:
				count += 1
				fields_seen.extend(fields)
				patterns_seen.extend(patterns)
		report = RedactionReport(
			total_changes=len(changes),
			redacted_count=count,
			redacted_fields=list(dict.fromkeys(fields_seen)),
			suspicious_patterns=list(dict.fromkeys(patterns_seen)),
		)
		if count:
			logger.info(f"Redacted {count}/{len(changes)} changes (fields: {', '.join(report.redacted_fields)})")
		return RedactionResult(redacted_changes=out, report=report)

	# --- Read-only risk analysis ---

	def _reasons(self, change: ChangeRecord) -> List[str]:
		all_text = " ".join(t for t in [change.title, change.body, change.author, *change.labels] if t)
		reasons: List[str] = []
		for pattern in self.patterns:
			if _search_outside_tokens(pattern, all_text):
				reasons.append(f"Potential secret detected: {pattern.pattern}")
		if _search_outside_tokens(EMAIL_RE, all_text):
			reasons.append("Email addresses detected")
		if _search_outside_tokens(PHONE_RE, all_text):
			reasons.append("Phone numbers detected")
		if _search_outside_tokens(IP_RE, all_text):
			reasons.append("IP addresses detected")
		if _search_outside_tokens(HASH_RE, all_text):
			reasons.append("Long hex strings detected (potential tokens)")
		low = " ".join(_TOKEN_RE.split(all_text)[::2]).lower()
		for keyword in SECRET_KEYWORDS:
			if keyword in low:
				reasons.append(f"Potentially sensitive keyword: {keyword}")
		return reasons

	def detect_sensitive_content(self, changes: Sequence[ChangeRecord]) -> SensitivityReport:
		suspicious = []
		for change in changes:
			reasons = self._reasons(change)
			if reasons:
				suspicious.append(SuspiciousChange(change=change, reasons=reasons))
		return SensitivityReport(suspicious_changes=suspicious, overall_risk=risk_level(suspicious, len(changes)))


def risk_level(suspicious: Sequence[SuspiciousChange], total_changes: int) -> RiskLevel:
	if not suspicious or total_changes <= 0:
		return "low"
	ratio = len(suspicious) / total_changes
	avg = sum(len(s.reasons) for s in suspicious) / len(suspicious)
	if ratio > 0.5 or avg > 3:
		return "high"
	if ratio > 0.2 or avg > 1.5:
		return "medium"
	return "low"


def redaction_summary(result: RedactionResult) -> str:
	report = result.report
	if report.redacted_count == 0:
		return "No sensitive content detected. All changes are safe to process."
	lines = [
		"Redaction Summary:",
		f"- {report.redacted_count}/{report.total_changes} changes required redaction",
		f"- Redacted fields: {', '.join(report.redacted_fields)}",
	]
	if report.suspicious_patterns:
		lines.append(f"- Detected patterns: {', '.join(report.suspicious_patterns)}")
	return "\n".join(lines)
