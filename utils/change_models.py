#!/usr/bin/env python3
"""Pydantic models for change records and generated release documents.

Change records are lenient on input: they are coerced rather than rejected,
because a malformed record must still flow through the pipeline. Release
documents accept the camelCase field names used on the generation wire.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

ChangeType = Literal[
	"feature",
	"fix",
	"chore",
	"performance",
	"docs",
	"security",
	"other",
]

ChangeOrigin = Literal["commit", "pull_request", "issue"]

NoteType = Literal["breaking", "migration", "deprecation", "info"]

CHANGE_TYPE_ALIASES = {
	"feat": "feature",
	"feature": "feature",
	"features": "feature",
	"enhancement": "feature",
	"fix": "fix",
	"bugfix": "fix",
	"bug": "fix",
	"perf": "performance",
	"performance": "performance",
	"docs": "docs",
	"doc": "docs",
	"documentation": "docs",
	"chore": "chore",
	"maintenance": "chore",
	"security": "security",
	"sec": "security",
	"other": "other",
}


def coerce_change_type(value: Any) -> str:
	if not isinstance(value, str):
		return "other"
	return CHANGE_TYPE_ALIASES.get(value.strip().lower(), "other")


def section_id_for(title: str) -> str:
	return re.sub(r"[^a-z0-9]", "-", (title or "").lower())


_DATETIME = TypeAdapter(datetime)


def lenient_int(value: Any) -> Optional[int]:
	"""int, digit string or '#345'; anything else is None."""
	if isinstance(value, bool):
		return None
	if isinstance(value, int):
		return value
	if isinstance(value, str) and value.strip().lstrip("#").isdigit():
		return int(value.strip().lstrip("#"))
	return None


def lenient_datetime(value: Any) -> Optional[datetime]:
	if value is None or isinstance(value, datetime):
		return value
	try:
		return _DATETIME.validate_python(value)
	except ValidationError:
		return None


class SourceReferences(BaseModel):
	"""Where a change came from; used to compare richness when merging."""

	pr_number: Optional[int] = Field(None, description="Pull request number")
	pr_url: Optional[str] = Field(None, description="Pull request URL")
	commit_sha: Optional[str] = Field(None, description="Commit SHA")
	files_changed_count: Optional[int] = Field(None, description="Number of files touched")

	model_config = {"extra": "ignore"}

	@field_validator("pr_number", "files_changed_count", mode="before")
	@classmethod
	def _coerce_count(cls, v):
		return lenient_int(v)

	@field_validator("pr_url", "commit_sha", mode="before")
	@classmethod
	def _coerce_ref(cls, v):
		return None if v is None or isinstance(v, (dict, list)) else str(v)


class ChangeRecord(BaseModel):
	"""One commit, pull request or issue in canonical shape."""

	id: str = Field(..., description="Commit SHA or issue/PR reference like '#345'")
	type: ChangeType = Field("other", description="Change category")
	scope: Optional[str] = Field(None, description="Subsystem name")
	title: str = Field("", description="Short human-readable summary")
	body: Optional[str] = Field(None, description="Longer description")
	labels: List[str] = Field(default_factory=list, description="Free-text labels")
	author: Optional[str] = Field(None, description="Author identity")
	linked_references: List[str] = Field(
		default_factory=list,
		validation_alias=AliasChoices("linked_references", "linkedReferences", "linkedIssues"),
		description="Cross-referenced issue/PR identifiers",
	)
	source_references: Optional[SourceReferences] = Field(
		None,
		validation_alias=AliasChoices("source_references", "sourceReferences"),
	)
	created_at: Optional[datetime] = Field(
		None,
		validation_alias=AliasChoices("created_at", "createdAt"),
	)
	origin: Optional[ChangeOrigin] = Field(None, description="Collector that produced the record")

	model_config = ConfigDict(extra="ignore", populate_by_name=True)

	@field_validator("type", mode="before")
	@classmethod
	def _coerce_type(cls, v):
		return coerce_change_type(v)

	@field_validator("id", mode="before")
	@classmethod
	def _coerce_id(cls, v):
		return "" if v is None else str(v)

	@field_validator("title", mode="before")
	@classmethod
	def _coerce_title(cls, v):
		return "" if v is None else str(v)

	@field_validator("scope", "body", "author", mode="before")
	@classmethod
	def _coerce_optional_text(cls, v):
		return None if v is None or isinstance(v, (dict, list)) else str(v)

	@field_validator("source_references", mode="before")
	@classmethod
	def _coerce_source_refs(cls, v):
		return v if isinstance(v, (dict, SourceReferences)) else None

	@field_validator("created_at", mode="before")
	@classmethod
	def _coerce_created_at(cls, v):
		return lenient_datetime(v)

	@field_validator("origin", mode="before")
	@classmethod
	def _coerce_origin(cls, v):
		return v if v in ("commit", "pull_request", "issue") else None

	@field_validator("labels", "linked_references", mode="before")
	@classmethod
	def _coerce_str_list(cls, v):
		if v is None:
			return []
		if not isinstance(v, (list, tuple, set)):
			return [str(v)]
		return [str(x) for x in v if x is not None]

	@property
	def pr_number(self) -> Optional[int]:
		return self.source_references.pr_number if self.source_references else None

	@property
	def pr_url(self) -> Optional[str]:
		return self.source_references.pr_url if self.source_references else None

	@property
	def commit_sha(self) -> Optional[str]:
		return self.source_references.commit_sha if self.source_references else None

	def display_reference(self) -> str:
		"""Short reference for humans: '#N', a 7-char SHA, or the raw id."""
		if self.pr_number:
			return f"#{self.pr_number}"
		if self.commit_sha:
			return self.commit_sha[:7]
		if re.fullmatch(r"[0-9a-fA-F]{40}", self.id or ""):
			return self.id[:7]
		return self.id


class ReleaseItem(BaseModel):
	id: str = ""
	short: str = ""
	pr: Optional[str] = None
	why: Optional[str] = None

	model_config = {"extra": "ignore"}

	@field_validator("id", "short", mode="before")
	@classmethod
	def _none_to_empty(cls, v):
		return "" if v is None else str(v)


class ReleaseSection(BaseModel):
	id: str = ""
	title: str = ""
	items: List[ReleaseItem] = Field(default_factory=list)

	model_config = {"extra": "ignore"}

	@field_validator("id", "title", mode="before")
	@classmethod
	def _none_to_empty(cls, v):
		return "" if v is None else str(v)

	@field_validator("items", mode="before")
	@classmethod
	def _none_to_list(cls, v):
		return [] if v is None else v


class DeveloperNote(BaseModel):
	type: NoteType = "info"
	desc: str = ""
	migration: Optional[str] = None

	model_config = {"extra": "ignore"}

	@field_validator("type", mode="before")
	@classmethod
	def _coerce_note_type(cls, v):
		v = (v or "").strip().lower() if isinstance(v, str) else ""
		return v if v in ("breaking", "migration", "deprecation", "info") else "info"


class ReleaseDocument(BaseModel):
	"""Structured output of one generation run."""

	title: str = Field("", validation_alias=AliasChoices("title", "releaseTitle", "release_title"))
	sections: List[ReleaseSection] = Field(default_factory=list)
	developer_notes: List[DeveloperNote] = Field(
		default_factory=list,
		validation_alias=AliasChoices("developer_notes", "developerNotes"),
	)
	summary: str = ""
	suspect_pii: bool = Field(False, validation_alias=AliasChoices("suspect_pii", "suspectPii"))
	suspect_jargon: bool = Field(False, validation_alias=AliasChoices("suspect_jargon", "suspectJargon"))

	model_config = ConfigDict(extra="ignore", populate_by_name=True)

	@field_validator("title", "summary", mode="before")
	@classmethod
	def _none_to_empty(cls, v):
		return "" if v is None else str(v)

	@field_validator("sections", "developer_notes", mode="before")
	@classmethod
	def _none_to_list(cls, v):
		return [] if v is None else v

	@field_validator("suspect_pii", "suspect_jargon", mode="before")
	@classmethod
	def _none_to_false(cls, v):
		return bool(v) if v is not None else False
