#!/usr/bin/env python3
"""Tone presets rendered into the generation request.

A tone file is a small markdown document:

	# Tone: Concise
	**Personality:** Direct, technical
	**Target Audience:** Experienced developers
	**Focus:** Facts and functionality

	## Guidelines
	- Use precise technical language

	## Example Bullets
	- Fix memory leak in parser (#123)

	## Example Summary
	This release fixes 3 bugs.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

BUILTIN_TONES_DIR = Path(__file__).resolve().parent.parent / "tones"


class ToneData(BaseModel):
	name: str
	personality: str = "Professional"
	target_audience: str = "Developers"
	focus: str = "Technical accuracy"
	guidelines: List[str] = Field(default_factory=list)
	example_bullets: List[str] = Field(default_factory=list)
	example_summary: str = "This release includes various improvements."


DEFAULT_TONES: Dict[str, ToneData] = {
	"concise": ToneData(
		name="Concise",
		personality="Direct, technical, no fluff",
		target_audience="Experienced developers",
		focus="Facts and functionality",
		guidelines=[
			"Use precise technical language",
			"Keep descriptions brief",
			"Focus on what changed, not why",
			"Include technical details when relevant",
		],
		example_bullets=[
			"Fix memory leak in parser (#123)",
			"Add OAuth2 support (#124)",
			"Update deps to latest versions (#125)",
		],
		example_summary="This release fixes 3 bugs, adds OAuth2 support, and updates dependencies.",
	),
	"friendly": ToneData(
		name="Friendly",
		personality="Approachable, conversational, helpful",
		target_audience="Mixed technical and non-technical users",
		focus="User impact and benefits",
		guidelines=[
			"Use welcoming, accessible language",
			"Explain the \"why\" behind changes",
			"Include context for user benefits",
			"Make technical concepts understandable",
		],
		example_bullets=[
			"🎉 Added OAuth2 login support - sign in with your favorite services! (#124)",
			"🐛 Fixed a pesky memory leak in WebSocket connections (#123)",
		],
		example_summary="We've been busy making your experience smoother with bug fixes and new features!",
	),
	"formal": ToneData(
		name="Formal",
		personality="Professional, authoritative, enterprise-appropriate",
		target_audience="Business stakeholders and enterprise users",
		focus="Stability, compliance, and business value",
		guidelines=[
			"Use professional, business-appropriate language",
			"Emphasize stability and security",
			"Focus on business impact",
		],
		example_bullets=[
			"Implemented OAuth2 authentication framework to enhance security compliance (#124)",
			"Resolved memory management issue affecting system stability (#123)",
		],
		example_summary="This release strengthens system security and improves operational stability.",
	),
	"detailed": ToneData(
		name="Detailed",
		personality="Comprehensive, educational, thorough",
		target_audience="Technical users who want full context",
		focus="Complete understanding and implementation details",
		guidelines=[
			"Provide comprehensive explanations",
			"Include technical implementation details",
			"Explain implications and impacts",
		],
		example_bullets=[
			"Fixed memory leak in WebSocket handler affecting long-running applications with frequent reconnections (#123)",
		],
		example_summary="This release addresses critical performance concerns while expanding authentication capabilities.",
	),
}

_FIELD_PREFIXES = (
	("**Personality:**", "personality"),
	("**Target Audience:**", "target_audience"),
	("**Focus:**", "focus"),
)
_LIST_SECTIONS = {
	"## Guidelines": "guidelines",
	"## Example Bullets": "bullets",
	"## Example Summary": "summary",
}


def parse_tone_file(content: str, preset: str) -> ToneData:
	data: Dict[str, object] = {"name": preset, "guidelines": [], "example_bullets": []}
	current = ""
	for line in content.splitlines():
		trimmed = line.strip()
		if trimmed.startswith("# Tone:"):
			data["name"] = trimmed[len("# Tone:"):].strip()
			continue
		prefixed = next((f for p, f in _FIELD_PREFIXES if trimmed.startswith(p)), None)
		if prefixed:
			prefix = next(p for p, f in _FIELD_PREFIXES if f == prefixed)
			data[prefixed] = trimmed[len(prefix):].strip()
		elif trimmed in _LIST_SECTIONS:
			current = _LIST_SECTIONS[trimmed]
		elif trimmed.startswith("- ") and current == "guidelines":
			data["guidelines"].append(trimmed[2:])
		elif trimmed.startswith("- ") and current == "bullets":
			data["example_bullets"].append(trimmed[2:])
		elif current == "summary" and trimmed and not trimmed.startswith("#"):
			data["example_summary"] = trimmed
	return ToneData(**{k: v for k, v in data.items() if v not in ("", None)})


class ToneManager:
	"""Resolves a tone preset to instructions; never fails for built-in presets."""

	def __init__(self, tones_dir: Optional[Path] = None) -> None:
		self.tones_dir = Path(tones_dir) if tones_dir else BUILTIN_TONES_DIR
		self._cache: Dict[str, ToneData] = {}

	def get_tone(self, preset: str, custom_tone_file: Optional[str] = None) -> ToneData:
		if preset == "custom" and custom_tone_file:
			try:
				return self.load_custom_tone(custom_tone_file)
			except OSError as e:
				logger.warning(f"Custom tone file unavailable ({e}); using default tone")
				return DEFAULT_TONES["concise"]
		return self.load_builtin_tone(preset)

	def load_builtin_tone(self, preset: str) -> ToneData:
		key = f"builtin-{preset}"
		if key in self._cache:
			return self._cache[key]
		path = self.tones_dir / f"{preset}.md"
		try:
			tone = parse_tone_file(path.read_text(encoding="utf-8"), preset)
		except OSError:
			tone = DEFAULT_TONES.get(preset, DEFAULT_TONES["concise"])
		self._cache[key] = tone
		return tone

	def load_custom_tone(self, file_path: str) -> ToneData:
		key = f"custom-{file_path}"
		if key not in self._cache:
			self._cache[key] = parse_tone_file(Path(file_path).read_text(encoding="utf-8"), "custom")
		return self._cache[key]

	def clear_cache(self) -> None:
		self._cache.clear()


def tone_instructions(tone: ToneData) -> str:
	lines = [
		f"Tone: {tone.name}",
		f"Personality: {tone.personality}",
		f"Target Audience: {tone.target_audience}",
		f"Focus: {tone.focus}",
		"",
	]
	if tone.guidelines:
		lines.append("Guidelines:")
		lines.extend(f"- {g}" for g in tone.guidelines)
		lines.append("")
	if tone.example_bullets:
		lines.append("Example bullets:")
		lines.extend(f"- {b}" for b in tone.example_bullets)
		lines.append("")
	if tone.example_summary:
		lines.append(f"Example summary: {tone.example_summary}")
	return "\n".join(lines)


def validate_tone_file(file_path: str) -> Tuple[bool, List[str]]:
	try:
		content = Path(file_path).read_text(encoding="utf-8")
	except OSError as e:
		return False, [f"Failed to read tone file: {e}"]
	errors: List[str] = []
	if "**Personality:**" not in content:
		errors.append("Missing **Personality:** section")
	if "**Target Audience:**" not in content:
		errors.append("Missing **Target Audience:** section")
	if "**Focus:**" not in content:
		errors.append("Missing **Focus:** section")
	if not parse_tone_file(content, "custom").guidelines:
		errors.append("Missing ## Guidelines section with bullet points")
	return not errors, errors
