#!/usr/bin/env python3
"""Changelog agent: turns collected change records into a CHANGELOG.md entry.

Pipeline: deduplicate/clean -> categorize -> redact -> generate (with retry
and deterministic fallback) -> render and merge into the changelog.
"""

import json
import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from agents.generation_orchestrator import GenerationOrchestrator, GenerationOutcome, GenerationService
from cache.cache_backend import CacheBackend
from clients.bedrock_client import BedrockClient
from configs.config import Config
from configs.settings import BedrockSettings, ChangelogSettings
from utils.audit_log import audit_redaction_run
from utils.categorizer import Categorizer, quality_warnings, section_summary
from utils.change_models import ChangeRecord
from utils.changelog_writer import ChangelogWriter, ChangelogWriteResult
from utils.circuit_breaker import CBConfig, CircuitBreaker
from utils.document_store import DocumentStore, OutputError
from utils.metrics import incr
from utils.normalization import normalize_changes
from utils.redactor import RedactionResult, Redactor, redaction_summary
from utils.validation import validate_settings

logger = logging.getLogger(__name__)


class CollectionError(Exception):
	def __init__(self, message: str, code: str = "COLLECTION_FAILED") -> None:
		super().__init__(message)
		self.code = code


class ConfigError(Exception):
	def __init__(self, message: str, code: str = "INVALID_CONFIG") -> None:
		super().__init__(message)
		self.code = code


def load_settings() -> ChangelogSettings:
	"""Settings from the environment; malformed values become ConfigError."""
	try:
		return ChangelogSettings.from_env()
	except ValueError as e:
		raise ConfigError(f"Invalid configuration: {e}") from e


def load_change_records(path: str) -> List[ChangeRecord]:
	"""Read a JSON list of change records (or {"changes": [...]})."""
	try:
		with open(path, "r", encoding="utf-8") as f:
			data = json.load(f)
	except OSError as e:
		raise CollectionError(f"Failed to read {path}: {e}", code="READ_FAILED") from e
	except json.JSONDecodeError as e:
		raise CollectionError(f"{path} is not valid JSON: {e}", code="INVALID_JSON") from e
	if isinstance(data, dict):
		data = data.get("changes")
	if not isinstance(data, list):
		raise CollectionError(f"{path} must contain a list of change records", code="INVALID_JSON")
	records = []
	for i, raw in enumerate(data):
		if not isinstance(raw, dict):
			raise CollectionError(f"Record {i} in {path} is not an object", code="INVALID_RECORD")
		if not str(raw.get("id") or "").strip():
			logger.warning(f"Record {i} in {path} has no id; using record-{i}")
			raw = {**raw, "id": f"record-{i}"}
		try:
			records.append(ChangeRecord.model_validate(raw))
		except ValidationError as e:
			raise CollectionError(f"Record {i} in {path} is invalid: {e}", code="INVALID_RECORD") from e
	logger.info(f"Loaded {len(records)} change records from {path}")
	return records


@dataclass
class PipelineResult:
	outcome: GenerationOutcome
	write: ChangelogWriteResult
	redaction: RedactionResult
	risk: str
	record_count: int
	sections: Dict[str, int] = field(default_factory=dict)
	warnings: List[str] = field(default_factory=list)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"changelog_path": self.write.changelog_path,
			"was_updated": self.write.was_updated,
			"backup_path": self.write.backup_path,
			"records": self.record_count,
			"sections": self.sections,
			"validated": self.outcome.validated,
			"fallback_used": self.outcome.fallback_used,
			"fallback_reason": getattr(self.outcome, "reason", None),
			"states": [s.value for s in self.outcome.states],
			"elapsed_s": round(self.outcome.elapsed_s, 3),
			"redacted": self.redaction.report.redacted_count,
			"risk": self.risk,
			"warnings": self.warnings,
		}


class ChangelogPipeline:
	"""Runs one changelog generation from already-collected records."""

	def __init__(
		self,
		settings: ChangelogSettings,
		service: Optional[GenerationService] = None,
		*,
		store: Optional[DocumentStore] = None,
		cache: Optional[CacheBackend] = None,
		breaker: Optional[CircuitBreaker] = None,
		kill_switch_path: Optional[str] = None,
		audit_root: Optional[str] = None,
	) -> None:
		errors, warnings = validate_settings(settings)
		if errors:
			raise ConfigError("; ".join(errors))
		for warning in warnings:
			logger.warning(warning)
		self.settings = settings
		self.redactor = Redactor(settings.redaction)
		self.categorizer = Categorizer(settings.format.sections, settings.format.max_items_per_section)
		self.orchestrator = GenerationOrchestrator(
			service,
			settings.format,
			settings.generation,
			cache=cache,
			breaker=breaker,
			kill_switch_path=kill_switch_path,
		)
		self.writer = ChangelogWriter(settings.format, store)
		self.audit_root = audit_root
		logger.info("Changelog pipeline initialized")

	@classmethod
	def from_env(cls, *, use_ai: bool = True, changelog_path: Optional[str] = None) -> "ChangelogPipeline":
		settings = load_settings()
		if changelog_path:
			settings.format.changelog_path = changelog_path
		service = BedrockClient(BedrockSettings.from_env()) if use_ai else None
		cache = CacheBackend(settings.cache) if settings.cache.enabled else None
		return cls(
			settings,
			service,
			cache=cache,
			breaker=CircuitBreaker("bedrock", CBConfig(**Config.get_cb_config())),
			kill_switch_path=Config.EMERGENCY_KILL_SWITCH,
			audit_root=Config.AUDIT_ROOT,
		)

	def run(
		self,
		records: Iterable[ChangeRecord],
		version: Optional[str] = None,
		*,
		dry_run: bool = False,
		release_date: Optional[date] = None,
	) -> PipelineResult:
		normalized = normalize_changes(list(records), self.settings.format.sections)
		categorized = self.categorizer.categorize(normalized)
		warnings = quality_warnings(normalized, categorized)
		for warning in warnings:
			logger.warning(warning)

		redaction = self.redactor.redact_changes(normalized)
		risk = self.redactor.detect_sensitive_content(redaction.redacted_changes).overall_risk
		logger.debug(redaction_summary(redaction))
		if self.audit_root:
			audit_redaction_run(redaction.report, run_label=version or "unversioned", risk=risk, root=self.audit_root)

		outcome = self.orchestrator.generate(redaction.redacted_changes, version)
		write = self.writer.write_changelog(outcome.document, version, release_date=release_date, dry_run=dry_run)
		incr("pipeline.run", records=len(normalized), fallback=outcome.fallback_used, dry_run=dry_run)
		return PipelineResult(
			outcome=outcome,
			write=write,
			redaction=redaction,
			risk=risk,
			record_count=len(normalized),
			sections=section_summary(categorized),
			warnings=warnings,
		)


def main():
	"""CLI entry point for the changelog agent."""
	import argparse

	parser = argparse.ArgumentParser(
		description="Changelog Agent - Generate CHANGELOG.md entries from change records",
		formatter_class=argparse.RawDescriptionHelpFormatter,
		epilog="""
Examples:
  python -m agents.changelog_agent generate --records changes.json --version v1.2.0
  python -m agents.changelog_agent generate --records changes.json --version v1.2.0 --dry-run --no-ai
  python -m agents.changelog_agent check --changelog CHANGELOG.md
		"""
	)
	sub = parser.add_subparsers(dest="command")

	gen = sub.add_parser("generate", help="Generate a changelog entry")
	gen.add_argument("--records", required=True, help="JSON file with collected change records")
	gen.add_argument("--version", required=False, help="Version heading, e.g. v1.2.0")
	gen.add_argument("--changelog", required=False, help="Changelog path (default from CHANGELOG_PATH)")
	gen.add_argument("--dry-run", action="store_true", help="Print the entry; do not write")
	gen.add_argument("--json", action="store_true", help="Output a JSON run summary")
	gen.add_argument("--no-ai", action="store_true", help="Skip the generation service; deterministic output")
	gen.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

	chk = sub.add_parser("check", help="Validate an existing changelog's format")
	chk.add_argument("--changelog", required=False)
	chk.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

	args = parser.parse_args()
	if not args.command:
		parser.print_help()
		sys.exit(2)

	log_level = logging.DEBUG if args.verbose else logging.INFO
	logging.basicConfig(
		level=log_level,
		format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
	)
	if not args.verbose:
		logging.getLogger("botocore").setLevel(logging.WARNING)
		logging.getLogger("urllib3").setLevel(logging.WARNING)
		logging.getLogger("langsmith").setLevel(logging.WARNING)
	langsmith_config = Config.get_langsmith_config()
	if langsmith_config["api_key"]:
		os.environ.setdefault("LANGSMITH_PROJECT", langsmith_config["project"])
		os.environ.setdefault("LANGSMITH_ENDPOINT", langsmith_config["endpoint"])

	try:
		if args.command == "check":
			writer = ChangelogWriter(load_settings().format)
			ok, errors = writer.validate_changelog_format(args.changelog)
			for err in errors:
				print(f"✗ {err}", file=sys.stderr)
			if ok:
				print("✓ Changelog format is valid")
			sys.exit(0 if ok else 1)

		records = load_change_records(args.records)
		pipeline = ChangelogPipeline.from_env(use_ai=not args.no_ai, changelog_path=args.changelog)
		result = pipeline.run(records, args.version, dry_run=args.dry_run)

		if args.json:
			print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
		elif args.dry_run:
			print(result.write.block)
		else:
			source = "deterministic fallback" if result.outcome.fallback_used else "generated"
			print(f"✓ Updated {result.write.changelog_path} ({result.record_count} changes, {source})")

	except (CollectionError, ConfigError, OutputError) as e:
		print(f"Error [{e.code}]: {e}", file=sys.stderr)
		sys.exit(1)

	except KeyboardInterrupt:
		print("\nOperation cancelled by user", file=sys.stderr)
		sys.exit(1)

	except Exception as e:
		print(f"Unexpected error: {e}", file=sys.stderr)
		if args.verbose:
			logger.exception("Detailed error information:")
		else:
			print("Use --verbose for more details", file=sys.stderr)
		sys.exit(1)


if __name__ == "__main__":
	main()
