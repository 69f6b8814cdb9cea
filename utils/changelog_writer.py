#!/usr/bin/env python3
"""Merge rendered version blocks into a persistent CHANGELOG document.

Newest versions go first. Re-running for a version that already has a block
replaces that block in place and leaves every other block byte-identical.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple

from configs.settings import FormatSettings
from utils.change_models import ReleaseDocument
from utils.document_store import DocumentStore, FileDocumentStore, OutputError
from utils.markdown_renderer import render_version_block

logger = logging.getLogger(__name__)

CHANGELOG_HEADER = (
	"# Changelog\n"
	"\n"
	"All notable changes to this project will be documented in this file.\n"
	"\n"
	"The format is based on [Keep a Changelog](https://keepachangelog.com/en/1.0.0/),\n"
	"and this project adheres to [Semantic Versioning](https://semver.org/spec/v2.0.0.html).\n"
	"\n"
)


def _version_heading_re(version: str) -> "re.Pattern[str]":
	# v1.2.0 must not claim v1.2.0-rc1, v1.2.01 or v11.2.0
	return re.compile(
		r"^## .*?(?<![0-9.])" + re.escape(version) + r"(?![A-Za-z0-9]|\.\d|-[A-Za-z0-9])",
		re.IGNORECASE,
	)


def find_version_heading(lines: List[str], version: str) -> int:
	pattern = _version_heading_re(version)
	for i, line in enumerate(lines):
		if pattern.match(line):
			return i
	return -1


def _insertion_index(lines: List[str]) -> int:
	for i, line in enumerate(lines):
		if line.startswith("## "):
			return i
	# No version blocks yet: after the title and its description
	title_idx = next((i for i, line in enumerate(lines) if line.startswith("# ")), -1)
	for i in range(title_idx + 1, len(lines)):
		if lines[i].startswith("#"):
			return i
	return len(lines)


def merge_document(existing: Optional[str], block: str, version: Optional[str]) -> str:
	"""Return the new document text with `block` merged in."""
	if existing is None or not existing.strip():
		return CHANGELOG_HEADER + block
	lines = existing.split("\n")
	block_lines = block.rstrip("\n").split("\n")
	if version:
		start = find_version_heading(lines, version)
		if start != -1:
			end = next((i for i in range(start + 1, len(lines)) if lines[i].startswith("## ")), len(lines))
			return "\n".join(lines[:start] + block_lines + [""] + lines[end:])
	at = _insertion_index(lines)
	prefix, rest = lines[:at], lines[at:]
	while prefix and not prefix[-1].strip():
		prefix.pop()
	return "\n".join(prefix + [""] + block_lines + [""] + rest)


@dataclass
class ChangelogWriteResult:
	changelog_path: str
	content: str
	block: str
	was_updated: bool
	previous_content: Optional[str] = None
	backup_path: Optional[str] = None


class ChangelogWriter:
	def __init__(self, settings: FormatSettings, store: Optional[DocumentStore] = None) -> None:
		self.settings = settings
		self.store = store or FileDocumentStore()

	def render(self, doc: ReleaseDocument, version: Optional[str] = None, *, release_date: Optional[date] = None) -> str:
		return render_version_block(
			doc,
			version,
			release_date=release_date,
			include_pr_links=self.settings.include_pr_links,
		)

	def preview(self, doc: ReleaseDocument, version: Optional[str] = None, *, release_date: Optional[date] = None) -> str:
		return self.render(doc, version, release_date=release_date)

	def write_changelog(
		self,
		doc: ReleaseDocument,
		version: Optional[str] = None,
		*,
		path: Optional[str] = None,
		release_date: Optional[date] = None,
		dry_run: bool = False,
	) -> ChangelogWriteResult:
		changelog_path = path or self.settings.changelog_path
		existing = self.store.read(changelog_path)
		block = self.render(doc, version, release_date=release_date)
		content = merge_document(existing, block, version)
		was_updated = existing is not None and bool(existing.strip())
		backup_path = None
		if dry_run:
			logger.info(f"Dry run: not writing {changelog_path}")
		elif content == existing:
			logger.info(f"{changelog_path} already up to date")
		else:
			if self.settings.backups and was_updated:
				backup_path = self.backup(changelog_path)
			self.store.write(changelog_path, content)
			logger.info(f"Wrote {version or doc.title or 'release'} to {changelog_path}")
		return ChangelogWriteResult(
			changelog_path=changelog_path,
			content=content,
			block=block,
			was_updated=was_updated,
			previous_content=existing if was_updated else None,
			backup_path=backup_path,
		)

	def validate_changelog_format(self, path: Optional[str] = None) -> Tuple[bool, List[str]]:
		changelog_path = path or self.settings.changelog_path
		try:
			content = self.store.read(changelog_path)
		except OutputError as e:
			return False, [f"Failed to read changelog: {e}"]
		if content is None:
			return False, [f"Failed to read changelog: {changelog_path} does not exist"]
		lines = content.split("\n")
		errors: List[str] = []
		if not lines[0].startswith("# "):
			errors.append("Missing main title (should start with # )")
		if not any(line.startswith("## ") for line in lines):
			errors.append("No release sections found (should have ## headings)")
		return not errors, errors

	def backup(self, path: Optional[str] = None) -> str:
		changelog_path = path or self.settings.changelog_path
		content = self.store.read(changelog_path)
		if content is None:
			raise OutputError(f"Failed to backup changelog: {changelog_path} does not exist", code="READ_FAILED")
		backup_path = f"{changelog_path}.backup.{int(time.time() * 1000)}"
		self.store.write(backup_path, content)
		logger.info(f"Backed up {changelog_path} to {backup_path}")
		return backup_path
