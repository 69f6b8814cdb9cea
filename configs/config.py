import json
import os
from typing import Dict, Any

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
	"""Configuration for the changelog agent."""

	# AWS Bedrock Configuration
	AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
	BEDROCK_MODEL_ID = os.getenv("BEDROCK_MODEL_ID", "anthropic.claude-3-sonnet-20240229-v1:0")
	BEDROCK_MAX_OUTPUT_TOKENS = int(os.getenv("BEDROCK_MAX_OUTPUT_TOKENS", "4000"))
	BEDROCK_TEMPERATURE = float(os.getenv("BEDROCK_TEMPERATURE", "0.1"))
	HTTP_TIMEOUT_S = int(os.getenv("HTTP_TIMEOUT_S", "60"))
	TOKENS_PER_CHAR = float(os.getenv("TOKENS_PER_CHAR", "4.0"))

	# LangSmith Configuration
	LANGSMITH_API_KEY = os.getenv("LANGSMITH_API_KEY", "")
	LANGSMITH_PROJECT = os.getenv("LANGSMITH_PROJECT", "changelog-agent")
	LANGSMITH_ENDPOINT = os.getenv("LANGSMITH_ENDPOINT", "https://api.smith.langchain.com")

	# Changelog output
	CHANGELOG_PATH = os.getenv("CHANGELOG_PATH", "CHANGELOG.md")
	MAX_ITEMS_PER_SECTION = int(os.getenv("MAX_ITEMS_PER_SECTION", "20"))
	INCLUDE_PR_LINKS = bool(int(os.getenv("INCLUDE_PR_LINKS", "1")))
	CHANGELOG_BACKUPS = bool(int(os.getenv("CHANGELOG_BACKUPS", "0")))
	# JSON list of {"name": ..., "labels": [...]}; empty keeps the built-in sections
	SECTIONS_JSON = os.getenv("SECTIONS_JSON", "")

	# Generation
	TONE_PRESET = os.getenv("TONE_PRESET", "concise")
	TONE_FILE = os.getenv("TONE_FILE") or None
	LOCALE = os.getenv("LOCALE", "en-US")
	INCLUDE_DEVELOPER_NOTES = bool(int(os.getenv("INCLUDE_DEVELOPER_NOTES", "1")))
	GENERATION_MAX_TURNS = int(os.getenv("GENERATION_MAX_TURNS", "1"))
	RETRY_RECORD_LIMIT = int(os.getenv("RETRY_RECORD_LIMIT", "10"))

	# Redaction
	REDACT_PATTERNS = os.getenv("REDACT_PATTERNS", "")
	EMAIL_MASK = bool(int(os.getenv("EMAIL_MASK", "1")))
	TRUNC_BODY_TO = int(os.getenv("TRUNC_BODY_TO", "300"))
	DETECT_HASHES = bool(int(os.getenv("DETECT_HASHES", "1")))
	DETECT_PHONES = bool(int(os.getenv("DETECT_PHONES", "1")))
	DETECT_IPS = bool(int(os.getenv("DETECT_IPS", "1")))

	# Cache config
	CACHE_ROOT = os.getenv("CACHE_ROOT", ".cache/changelog/responses")
	CACHE_ENABLED = bool(int(os.getenv("CACHE_ENABLED", "1")))
	CACHE_TTL_S = int(os.getenv("CACHE_TTL_S", "259200"))
	CACHE_ATOMIC_WRITES = bool(int(os.getenv("CACHE_ATOMIC_WRITES", "1")))

	# Guardrails & observability
	CB_FAILURE_THRESHOLD = int(os.getenv("CB_FAILURE_THRESHOLD", "5"))
	CB_RECOVERY_TIME_S = int(os.getenv("CB_RECOVERY_TIME_S", "120"))
	CB_HALF_OPEN_MAX_CALLS = int(os.getenv("CB_HALF_OPEN_MAX_CALLS", "1"))
	CB_ROOT = os.getenv("CB_ROOT", ".cache/changelog/cb")

	METRICS_ROOT = os.getenv("METRICS_ROOT", ".cache/changelog/metrics")
	METRICS_ENABLED = bool(int(os.getenv("METRICS_ENABLED", "1")))

	AUDIT_ROOT = os.getenv("AUDIT_ROOT", ".cache/changelog/audit")

	EMERGENCY_KILL_SWITCH = os.getenv("EMERGENCY_KILL_SWITCH", ".cache/changelog/KILL")

	@classmethod
	def get_cb_config(cls) -> Dict[str, Any]:
		return {
			"failure_threshold": cls.CB_FAILURE_THRESHOLD,
			"recovery_time_s": cls.CB_RECOVERY_TIME_S,
			"half_open_max_calls": cls.CB_HALF_OPEN_MAX_CALLS,
			"state_root": cls.CB_ROOT,
		}

	@classmethod
	def get_bedrock_config(cls) -> Dict[str, Any]:
		"""Get Bedrock configuration."""
		return {
			"region_name": cls.AWS_REGION,
			"model_id": cls.BEDROCK_MODEL_ID,
			"max_output_tokens": cls.BEDROCK_MAX_OUTPUT_TOKENS,
			"temperature": cls.BEDROCK_TEMPERATURE,
			"timeout_s": cls.HTTP_TIMEOUT_S,
			"tokens_per_char": cls.TOKENS_PER_CHAR,
		}

	@classmethod
	def get_langsmith_config(cls) -> Dict[str, Any]:
		"""Get LangSmith configuration."""
		return {
			"api_key": cls.LANGSMITH_API_KEY,
			"project": cls.LANGSMITH_PROJECT,
			"endpoint": cls.LANGSMITH_ENDPOINT
		}

	@classmethod
	def get_redaction_config(cls) -> Dict[str, Any]:
		"""Get redaction configuration.

		REDACT_PATTERNS is a comma-separated list; when empty the built-in
		pattern list from the settings model is used.
		"""
		patterns = [p.strip() for p in cls.REDACT_PATTERNS.split(",") if p.strip()]
		cfg: Dict[str, Any] = {
			"email_mask": cls.EMAIL_MASK,
			"trunc_body_to": cls.TRUNC_BODY_TO,
			"detect_hashes": cls.DETECT_HASHES,
			"detect_phones": cls.DETECT_PHONES,
			"detect_ips": cls.DETECT_IPS,
		}
		if patterns:
			cfg["redact_patterns"] = patterns
		return cfg

	@classmethod
	def get_format_config(cls) -> Dict[str, Any]:
		"""Get output format configuration.

		Raises ValueError when SECTIONS_JSON is not a JSON list.
		"""
		cfg: Dict[str, Any] = {
			"changelog_path": cls.CHANGELOG_PATH,
			"max_items_per_section": cls.MAX_ITEMS_PER_SECTION,
			"include_pr_links": cls.INCLUDE_PR_LINKS,
			"backups": cls.CHANGELOG_BACKUPS,
		}
		if cls.SECTIONS_JSON.strip():
			sections = json.loads(cls.SECTIONS_JSON)
			if not isinstance(sections, list):
				raise ValueError("SECTIONS_JSON must be a JSON list of sections")
			cfg["sections"] = sections
		return cfg

	@classmethod
	def get_generation_config(cls) -> Dict[str, Any]:
		return {
			"tone_preset": cls.TONE_PRESET,
			"tone_file": cls.TONE_FILE,
			"locale": cls.LOCALE,
			"include_developer_notes": cls.INCLUDE_DEVELOPER_NOTES,
			"max_turns": cls.GENERATION_MAX_TURNS,
			"retry_record_limit": cls.RETRY_RECORD_LIMIT,
		}

	@classmethod
	def get_cache_config(cls) -> Dict[str, Any]:
		return {
			"enabled": cls.CACHE_ENABLED,
			"ttl_s": cls.CACHE_TTL_S,
			"root_dir": cls.CACHE_ROOT,
			"atomic_writes": cls.CACHE_ATOMIC_WRITES,
		}
