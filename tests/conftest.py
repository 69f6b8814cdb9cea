"""Shared fixtures for all test modules."""
import sys
from pathlib import Path

import pytest

# Ensure repository root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from configs.config import Config
from configs.settings import SectionDefinition
from utils.change_models import (
    ChangeRecord,
    ReleaseDocument,
    ReleaseItem,
    ReleaseSection,
    SourceReferences,
)


@pytest.fixture(autouse=True)
def _isolated_state(tmp_path, monkeypatch):
    """Keep metrics, audit, cache and breaker files inside tmp_path."""
    state = tmp_path / ".state"
    monkeypatch.setattr(Config, "METRICS_ENABLED", False)
    monkeypatch.setattr(Config, "METRICS_ROOT", str(state / "metrics"))
    monkeypatch.setattr(Config, "AUDIT_ROOT", str(state / "audit"))
    monkeypatch.setattr(Config, "CACHE_ROOT", str(state / "responses"))
    monkeypatch.setattr(Config, "CB_ROOT", str(state / "cb"))
    monkeypatch.setattr(Config, "EMERGENCY_KILL_SWITCH", str(state / "KILL"))
    for var in ("LANGSMITH_TRACING", "LANGCHAIN_TRACING_V2", "LANGSMITH_TRACING_V2"):
        monkeypatch.delenv(var, raising=False)


class MemoryStore:
    """DocumentStore kept in a dict; records every write."""

    def __init__(self, docs=None):
        self.docs = dict(docs or {})
        self.writes = []

    def read(self, path):
        return self.docs.get(path)

    def write(self, path, text):
        self.writes.append(path)
        self.docs[path] = text


class FakeService:
    """Generation service returning (or raising) canned responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    def complete(self, prompt, *, max_turns=1):
        self.prompts.append(prompt)
        if not self.responses:
            raise RuntimeError("no more canned responses")
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


def make_record(id, title="", *, type="other", labels=None, body=None, pr=None, sha=None, author=None):
    refs = None
    if pr is not None or sha is not None:
        refs = SourceReferences(
            pr_number=pr,
            pr_url=f"https://github.com/acme/app/pull/{pr}" if pr is not None else None,
            commit_sha=sha,
        )
    return ChangeRecord(
        id=id,
        title=title,
        type=type,
        labels=labels or [],
        body=body,
        author=author,
        source_references=refs,
    )


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def saml_and_csv_records():
    return [
        make_record("#345", "Add SAML login", type="feature", labels=["feature"], pr=345),
        make_record("#350", "Fix CSV crash", type="fix", labels=["bug"], pr=350),
    ]


@pytest.fixture
def saml_and_csv_document():
    return ReleaseDocument(
        title="v1.2.0 Release",
        sections=[
            ReleaseSection(
                id="-features",
                title="🚀 Features",
                items=[ReleaseItem(id="#345", short="Add SAML login (#345)", pr="https://github.com/acme/app/pull/345")],
            ),
            ReleaseSection(
                id="-fixes",
                title="🛠 Fixes",
                items=[ReleaseItem(id="#350", short="Fix CSV crash (#350)", pr="https://github.com/acme/app/pull/350")],
            ),
        ],
        summary="Adds SAML login and fixes a CSV export crash.",
    )


@pytest.fixture
def custom_sections():
    return [
        SectionDefinition(name="Features", labels=["feature"]),
        SectionDefinition(name="Fixes", labels=["bug"]),
    ]
