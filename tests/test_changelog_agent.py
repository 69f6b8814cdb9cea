"""End-to-end tests for agents/changelog_agent.py."""
import json
import sys
from datetime import date

import pytest
from conftest import FakeService, MemoryStore, make_record

from agents.changelog_agent import (
    ChangelogPipeline,
    CollectionError,
    ConfigError,
    load_change_records,
    load_settings,
    main,
)
from clients.bedrock_client import BedrockError
from configs.config import Config
from configs.settings import ChangelogSettings, GenerationSettings, default_sections
from utils.normalization import normalize_changes

DAY = date(2024, 5, 1)


def _write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


class TestLoadChangeRecords:
    def test_list_and_wrapped_forms(self, tmp_path):
        raw = [{"id": "#1", "type": "feat", "title": "Add x", "linkedIssues": ["#2"]}]
        records = load_change_records(_write_json(tmp_path / "a.json", raw))
        assert records[0].type == "feature"
        assert records[0].linked_references == ["#2"]
        wrapped = load_change_records(_write_json(tmp_path / "b.json", {"changes": raw}))
        assert wrapped == records

    def test_missing_file(self, tmp_path):
        with pytest.raises(CollectionError) as exc:
            load_change_records(str(tmp_path / "missing.json"))
        assert exc.value.code == "READ_FAILED"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{nope", encoding="utf-8")
        with pytest.raises(CollectionError) as exc:
            load_change_records(str(path))
        assert exc.value.code == "INVALID_JSON"

    def test_records_without_id_get_distinct_ids(self, tmp_path):
        raw = [{"title": "no id"}, {"id": "", "title": "blank id"}, {"id": "#3", "title": "has id"}]
        records = load_change_records(_write_json(tmp_path / "c.json", raw))
        assert [r.id for r in records] == ["record-0", "record-1", "#3"]
        assert len(normalize_changes(records, default_sections())) == 3

    def test_malformed_fields_do_not_reject_batch(self, tmp_path):
        """Unparseable timestamps and reference numbers are dropped, not fatal."""
        raw = [
            {"id": "#1", "title": "Good", "createdAt": "2024-05-01T10:00:00Z"},
            {"id": "#2", "title": "Bad date", "createdAt": "last tuesday"},
            {"id": "#3", "title": "Bad refs", "sourceReferences": {"pr_number": "n/a", "files_changed_count": "many"}},
            {"id": "#4", "title": "Odd fields", "origin": "email", "labels": 5, "body": 42},
        ]
        records = load_change_records(_write_json(tmp_path / "d.json", raw))
        assert [r.id for r in records] == ["#1", "#2", "#3", "#4"]
        assert records[0].created_at.year == 2024
        assert records[1].created_at is None
        assert records[2].source_references.pr_number is None
        assert records[2].source_references.files_changed_count is None
        assert records[3].origin is None
        assert records[3].labels == ["5"]
        assert records[3].body == "42"

    def test_string_pr_number_is_kept(self, tmp_path):
        raw = [{"id": "#7", "sourceReferences": {"pr_number": "#7", "files_changed_count": "3"}}]
        record = load_change_records(_write_json(tmp_path / "e.json", raw))[0]
        assert record.pr_number == 7
        assert record.source_references.files_changed_count == 3

    def test_non_object_entry_rejected(self, tmp_path):
        with pytest.raises(CollectionError) as exc:
            load_change_records(_write_json(tmp_path / "f.json", [{"id": "#1"}, "oops"]))
        assert exc.value.code == "INVALID_RECORD"


class TestPipeline:
    def test_fallback_run_writes_redacted_changelog(self, tmp_path):
        """A failing service still produces a changelog, built from redacted records."""
        store = MemoryStore()
        records = [
            make_record("#345", "feat(auth): add SAML login", labels=["feature"], pr=345),
            make_record("#350", "Fix CSV crash reported by ops@example.com", type="fix", pr=350),
            make_record("#350", "", type="other", pr=350, body="Signed-off-by: Dev <dev@example.com>"),
        ]
        pipeline = ChangelogPipeline(
            ChangelogSettings(),
            FakeService(BedrockError("down", code="TIMEOUT")),
            store=store,
            audit_root=str(tmp_path / "audit"),
        )
        result = pipeline.run(records, "v1.2.0", release_date=DAY)
        content = store.docs["CHANGELOG.md"]
        assert result.outcome.fallback_used
        assert result.record_count == 2
        assert "## v1.2.0 — 2024-05-01" in content
        assert "- Add SAML login (#345)" in content
        assert "- Fix CSV crash reported by [REDACTED-EMAIL] (#350)" in content
        assert "ops@example.com" not in content
        assert result.redaction.report.redacted_count == 1
        assert result.sections["🚀 Features"] == 1
        assert list((tmp_path / "audit").iterdir())
        summary = result.to_dict()
        assert summary["fallback_reason"] == "service_error:TIMEOUT"
        assert summary["states"][-1] == "ACCEPT"

    def test_generated_run(self, saml_and_csv_records):
        doc = {
            "releaseTitle": "v1.2.0 Release",
            "sections": [{"id": "features", "title": "🚀 Features", "items": [{"id": "#345", "short": "Add SAML login", "pr": "https://github.com/acme/app/pull/345"}]}],
            "summary": "Adds SAML login.",
        }
        store = MemoryStore()
        pipeline = ChangelogPipeline(ChangelogSettings(), FakeService(json.dumps(doc)), store=store)
        result = pipeline.run(saml_and_csv_records, "v1.2.0", release_date=DAY)
        assert result.outcome.validated
        assert "- Add SAML login (#345)" in store.docs["CHANGELOG.md"]

    def test_dry_run_leaves_store_untouched(self, saml_and_csv_records):
        store = MemoryStore()
        result = ChangelogPipeline(ChangelogSettings(), None, store=store).run(saml_and_csv_records, "v1.2.0", dry_run=True)
        assert store.writes == []
        assert result.write.block.startswith("## v1.2.0")

    def test_invalid_settings_rejected(self):
        settings = ChangelogSettings(generation=GenerationSettings(tone_preset="custom"))
        with pytest.raises(ConfigError):
            ChangelogPipeline(settings)


class TestLoadSettings:
    def test_sections_from_env(self, monkeypatch):
        monkeypatch.setattr(Config, "SECTIONS_JSON", json.dumps([
            {"name": "New", "labels": ["feature"]},
            {"name": "Fixed", "labels": ["bug", "fix"]},
        ]))
        sections = load_settings().format.sections
        assert [s.name for s in sections] == ["New", "Fixed"]
        assert sections[1].labels == ["bug", "fix"]

    def test_default_sections_when_unset(self, monkeypatch):
        monkeypatch.setattr(Config, "SECTIONS_JSON", "")
        assert load_settings().format.sections == default_sections()

    @pytest.mark.parametrize("raw", ["{nope", '{"name": "New"}', '[{"title": "missing name"}]'])
    def test_malformed_sections_raise_config_error(self, monkeypatch, raw):
        monkeypatch.setattr(Config, "SECTIONS_JSON", raw)
        with pytest.raises(ConfigError) as exc:
            load_settings()
        assert exc.value.code == "INVALID_CONFIG"

    def test_detector_toggles(self, monkeypatch):
        monkeypatch.setattr(Config, "DETECT_IPS", False)
        monkeypatch.setattr(Config, "DETECT_PHONES", False)
        redaction = load_settings().redaction
        assert redaction.detect_ips is False
        assert redaction.detect_phones is False
        assert redaction.detect_hashes is True


class TestMain:
    def test_generate_no_ai(self, tmp_path, monkeypatch, capsys):
        records = _write_json(tmp_path / "changes.json", [
            {"id": "#1", "type": "feature", "title": "Add export", "sourceReferences": {"pr_number": 1, "pr_url": "https://github.com/acme/app/pull/1"}},
        ])
        changelog = tmp_path / "CHANGELOG.md"
        monkeypatch.setattr(sys, "argv", [
            "changelog_agent", "generate", "--records", records, "--version", "v0.1.0",
            "--changelog", str(changelog), "--no-ai", "--json",
        ])
        main()
        out = json.loads(capsys.readouterr().out)
        assert out["fallback_used"] is True
        assert out["changelog_path"] == str(changelog)
        assert "- Add export (#1)" in changelog.read_text(encoding="utf-8")

    def test_missing_records_exits_nonzero(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["changelog_agent", "generate", "--records", str(tmp_path / "none.json"), "--no-ai"])
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 1
        assert "READ_FAILED" in capsys.readouterr().err

    def test_check_command(self, tmp_path, monkeypatch):
        changelog = tmp_path / "CHANGELOG.md"
        changelog.write_text("# Changelog\n\n## v1.0.0 — 2024-01-01\n\n- a\n", encoding="utf-8")
        monkeypatch.setattr(sys, "argv", ["changelog_agent", "check", "--changelog", str(changelog)])
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 0

    def test_bad_sections_env_exits_with_config_error(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(Config, "SECTIONS_JSON", "{nope")
        records = _write_json(tmp_path / "changes.json", [{"id": "#1", "title": "x"}])
        monkeypatch.setattr(sys, "argv", ["changelog_agent", "generate", "--records", records, "--no-ai", "--dry-run"])
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 1
        assert "Error [INVALID_CONFIG]" in capsys.readouterr().err
