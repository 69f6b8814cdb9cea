"""Tests for agents/generation_orchestrator.py."""
import json

import pytest
from conftest import FakeService, make_record

from agents.generation_orchestrator import (
    Accepted,
    FellBack,
    GenerationOrchestrator,
    GenerationState as S,
    deterministic_document,
)
from cache.cache_backend import CacheBackend
from clients.bedrock_client import BedrockError
from configs.settings import CacheSettings, FormatSettings, GenerationSettings
from utils.circuit_breaker import CBConfig, CircuitBreaker
from utils.validation import validate_release_document

VALID = json.dumps({
    "releaseTitle": "v1.2.0 Release",
    "sections": [
        {"id": "features", "title": "🚀 Features", "items": [{"id": "#345", "short": "Add SAML login (#345)", "pr": None, "why": None}]},
    ],
    "developerNotes": [{"type": "breaking", "desc": "Drops Python 3.8", "migration": "Upgrade"}],
    "summary": "Adds SAML login.",
})
INVALID = json.dumps({"releaseTitle": "", "sections": [], "developerNotes": [], "summary": ""})
MARKDOWN = (
    "## v1.2.0 Release\n\n"
    "### 🚀 Features\n\n"
    "- Add SAML login (#345)\n\n"
    "**Summary:** Adds SAML login.\n"
)


def _orchestrator(service, **kw):
    generation = kw.pop("generation", GenerationSettings())
    return GenerationOrchestrator(service, FormatSettings(), generation, **kw)


@pytest.fixture
def records(saml_and_csv_records):
    return saml_and_csv_records


class TestHappyPath:
    def test_valid_json_accepted(self, records):
        service = FakeService("Here you go:\n```json\n" + VALID + "\n```")
        outcome = _orchestrator(service).generate(records, "v1.2.0")
        assert isinstance(outcome, Accepted)
        assert outcome.validated and not outcome.fallback_used
        assert outcome.document.title == "v1.2.0 Release"
        assert outcome.states == [S.BUILD_PROMPT, S.CALL_EXTERNAL, S.VALIDATE, S.ACCEPT]
        assert len(service.prompts) == 1
        assert outcome.elapsed_s >= 0

    def test_prompt_carries_records_sections_and_tone(self, records):
        service = FakeService(VALID)
        _orchestrator(service).generate(records, "v1.2.0")
        prompt = service.prompts[0]
        assert "Add SAML login" in prompt
        assert "🛠 Fixes" in prompt
        assert "Tone: Concise" in prompt
        assert "v1.2.0" in prompt

    def test_markdown_response_accepted(self, records):
        """Semi-structured markdown is the second parse strategy."""
        outcome = _orchestrator(FakeService(MARKDOWN)).generate(records, "v1.2.0")
        assert isinstance(outcome, Accepted) and outcome.validated
        assert outcome.document.sections[0].items[0].id == "#345"

    def test_developer_notes_dropped_when_disabled(self, records):
        generation = GenerationSettings(include_developer_notes=False)
        outcome = _orchestrator(FakeService(VALID), generation=generation).generate(records, "v1.2.0")
        assert outcome.document.developer_notes == []


class TestRetry:
    def test_invalid_then_valid(self, records):
        service = FakeService(INVALID, VALID)
        outcome = _orchestrator(service).generate(records, "v1.2.0")
        assert isinstance(outcome, Accepted) and outcome.validated
        assert outcome.states == [
            S.BUILD_PROMPT, S.CALL_EXTERNAL, S.VALIDATE, S.RETRY_SIMPLIFIED, S.VALIDATE_RETRY, S.ACCEPT,
        ]
        assert "Generate simple release notes for v1.2.0" in service.prompts[1]

    def test_invalid_twice_accepted_unvalidated(self, records):
        """A parseable but invalid retry is accepted; there is never a third call."""
        service = FakeService(INVALID, INVALID, VALID)
        outcome = _orchestrator(service).generate(records, "v1.2.0")
        assert isinstance(outcome, Accepted)
        assert outcome.validated is False
        assert outcome.fallback_used is False
        assert outcome.states[-1] == S.ACCEPT_UNVALIDATED
        assert len(service.prompts) == 2

    def test_unparseable_then_retry_raises(self, records):
        service = FakeService("I cannot help with that.", BedrockError("boom", code="NETWORK"))
        outcome = _orchestrator(service).generate(records, "v1.2.0")
        assert isinstance(outcome, FellBack)
        assert outcome.reason == "retry_error:NETWORK"

    def test_retry_unparseable_falls_back(self, records):
        service = FakeService(INVALID, "sorry")
        outcome = _orchestrator(service).generate(records, "v1.2.0")
        assert isinstance(outcome, FellBack)
        assert outcome.reason == "retry_unparseable"

    def test_retry_uses_first_ten_records(self):
        many = [make_record(f"r{i}", f"Change {i}", type="feature") for i in range(1, 16)]
        service = FakeService(INVALID, VALID)
        _orchestrator(service).generate(many, "v2.0.0")
        retry_prompt = service.prompts[1]
        assert '"id": "r10"' in retry_prompt
        assert '"id": "r11"' not in retry_prompt


class TestFallback:
    def test_service_always_raising(self, records):
        """Any service error yields a valid deterministic document."""
        service = FakeService(BedrockError("down", code="TIMEOUT"))
        outcome = _orchestrator(service).generate(records, "v1.2.0")
        assert isinstance(outcome, FellBack)
        assert outcome.fallback_used and not outcome.validated
        assert outcome.reason == "service_error:TIMEOUT"
        assert outcome.states == [S.BUILD_PROMPT, S.CALL_EXTERNAL, S.DETERMINISTIC_FALLBACK, S.ACCEPT]
        assert validate_release_document(outcome.document)[0]

    def test_no_service(self, records):
        outcome = _orchestrator(None).generate(records, "v1.2.0")
        assert isinstance(outcome, FellBack)
        assert outcome.reason == "service_error:DISABLED"

    def test_kill_switch(self, records, tmp_path):
        kill = tmp_path / "KILL"
        kill.write_text("1")
        service = FakeService(VALID)
        outcome = _orchestrator(service, kill_switch_path=str(kill)).generate(records, "v1.2.0")
        assert isinstance(outcome, FellBack)
        assert outcome.reason == "service_error:KILL_SWITCH"
        assert service.prompts == []

    def test_open_circuit_skips_service(self, records, tmp_path):
        breaker = CircuitBreaker("gen", CBConfig(failure_threshold=1, state_root=str(tmp_path)))
        breaker.record_failure()
        service = FakeService(VALID)
        outcome = _orchestrator(service, breaker=breaker).generate(records, "v1.2.0")
        assert isinstance(outcome, FellBack)
        assert outcome.reason == "service_error:CIRCUIT_OPEN"
        assert service.prompts == []

    def test_failures_feed_the_breaker(self, records, tmp_path):
        breaker = CircuitBreaker("gen", CBConfig(failure_threshold=1, state_root=str(tmp_path)))
        _orchestrator(FakeService(RuntimeError("x")), breaker=breaker).generate(records, "v1.2.0")
        assert breaker.state() == "OPEN"


class TestCache:
    def test_cached_response_replaces_call(self, records, tmp_path):
        cache = CacheBackend(CacheSettings(enabled=True, root_dir=str(tmp_path / "cache")))
        first = _orchestrator(FakeService(VALID), cache=cache).generate(records, "v1.2.0")
        assert first.validated
        service = FakeService(BedrockError("down"))
        second = _orchestrator(service, cache=cache).generate(records, "v1.2.0")
        assert isinstance(second, Accepted) and second.validated
        assert service.prompts == []

    def test_invalid_responses_not_cached(self, records, tmp_path):
        cache = CacheBackend(CacheSettings(enabled=True, root_dir=str(tmp_path / "cache")))
        _orchestrator(FakeService(INVALID, INVALID), cache=cache).generate(records, "v1.2.0")
        service = FakeService(VALID)
        _orchestrator(service, cache=cache).generate(records, "v1.2.0")
        assert len(service.prompts) == 1


class TestDeterministicDocument:
    def test_sections_items_and_summary(self):
        records = [
            make_record("#345", "Add SAML login", type="feature", pr=345),
            make_record("#350", "Fix CSV crash", type="fix", pr=350),
            make_record("abc", "Update docs", type="docs"),
        ]
        doc = deterministic_document(records, "v1.2.0", FormatSettings())
        assert doc.title == "v1.2.0 Release"
        assert [s.title for s in doc.sections] == ["🚀 Features", "🛠 Fixes", "Other Changes"]
        assert doc.sections[-1].id == "other"
        item = doc.sections[0].items[0]
        assert item.short == "Add SAML login (#345)"
        assert item.pr == "https://github.com/acme/app/pull/345"
        assert doc.summary == "This release includes 3 changes across 3 categories."
        assert validate_release_document(doc)[0]

    def test_empty_run(self):
        doc = deterministic_document([], None, FormatSettings())
        assert doc.title == "Release Notes"
        assert [s.title for s in doc.sections] == ["Other Changes"]
        assert doc.summary == "This release includes 0 changes across 1 category."
        assert validate_release_document(doc)[0]
