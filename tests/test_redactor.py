"""Tests for utils/redactor.py and utils/audit_log.py."""
import json

from conftest import make_record

from configs.settings import RedactionSettings
from utils.audit_log import audit_redaction_run
from utils.redactor import (
    REDACTED,
    REDACTED_EMAIL,
    REDACTED_HASH,
    REDACTED_IP,
    Redactor,
    SuspiciousChange,
    redaction_summary,
    risk_level,
    truncate_text,
)


class TestRedactText:
    def test_user_pattern_and_email(self):
        """User patterns and emails are replaced with their tokens."""
        text, fired = Redactor().redact_text("rotate api_key for ops@example.com")
        assert text == f"rotate {REDACTED} for {REDACTED_EMAIL}"
        assert "api_?key" in fired
        assert "email" in fired

    def test_builtin_detectors(self):
        text, fired = Redactor().redact_text("sha " + "a" * 40 + " from 10.0.0.12")
        assert text == f"sha {REDACTED_HASH} from {REDACTED_IP}"
        assert set(fired) == {"hash", "ip"}

    def test_email_mask_disabled(self):
        redactor = Redactor(RedactionSettings(email_mask=False))
        text, fired = redactor.redact_text("mail ops@example.com")
        assert text == "mail ops@example.com"
        assert fired == []

    def test_invalid_pattern_matched_literally(self):
        """A broken regex is escaped instead of aborting the pass."""
        redactor = Redactor(RedactionSettings(redact_patterns=["a(b"]))
        text, _ = redactor.redact_text("x a(b y")
        assert text == f"x {REDACTED} y"

    def test_idempotent(self):
        """Redacting already-redacted text is a no-op."""
        redactor = Redactor()
        once, _ = redactor.redact_text("password=hunter2 for admin@example.com at 192.168.1.1")
        twice, fired = redactor.redact_text(once)
        assert twice == once
        assert fired == []


class TestTruncation:
    def test_exact_length(self):
        """Truncated output is exactly the configured length, marker included."""
        out = truncate_text("x" * 1000, 300)
        assert len(out) == 300
        assert out.endswith("...")

    def test_short_text_untouched(self):
        assert truncate_text("short", 300) == "short"

    def test_disabled_when_not_positive(self):
        assert truncate_text("x" * 1000, 0) == "x" * 1000


class TestRedactChanges:
    def test_report_lists_fields_and_patterns(self):
        records = [
            make_record("#1", "Contact ops@example.com", body="y" * 500, author="Dev"),
            make_record("#2", "Fix CSV crash"),
        ]
        result = Redactor(RedactionSettings(trunc_body_to=100)).redact_changes(records)
        first = result.redacted_changes[0]
        assert first.title == f"Contact {REDACTED_EMAIL}"
        assert len(first.body) == 100
        assert result.redacted_changes[1] is records[1]
        report = result.report
        assert report.total_changes == 2
        assert report.redacted_count == 1
        assert report.redacted_fields == ["title", "body (truncated)"]
        assert report.suspicious_patterns == ["email"]

    def test_labels_redacted(self):
        record = make_record("#1", "x", labels=["secret-project"])
        redacted, fields, _ = Redactor().redact_change(record)
        assert redacted.labels == [f"{REDACTED}-project"]
        assert fields == ["labels"]

    def test_redact_changes_idempotent(self):
        records = [make_record("#1", "token leak", body="ops@example.com " + "z" * 400)]
        redactor = Redactor()
        once = redactor.redact_changes(records).redacted_changes
        twice = redactor.redact_changes(once)
        assert twice.redacted_changes == once
        assert twice.report.redacted_count == 0

    def test_summary_text(self):
        result = Redactor().redact_changes([make_record("#1", "Fix CSV crash")])
        assert redaction_summary(result).startswith("No sensitive content detected")


class TestRiskAnalysis:
    def test_detect_sensitive_content(self):
        """Analysis is read-only and lists reasons per record."""
        records = [make_record("#1", "Reset password flow"), make_record("#2", "Fix CSV crash")]
        report = Redactor().detect_sensitive_content(records)
        assert len(report.suspicious_changes) == 1
        reasons = report.suspicious_changes[0].reasons
        assert "Potential secret detected: password" in reasons
        assert "Potentially sensitive keyword: password" in reasons
        assert records[0].title == "Reset password flow"

    def test_risk_thresholds(self):
        record = make_record("#1", "x")
        one_reason = SuspiciousChange(change=record, reasons=["a"])
        two_reasons = SuspiciousChange(change=record, reasons=["a", "b"])
        assert risk_level([], 10) == "low"
        assert risk_level([one_reason], 10) == "low"
        assert risk_level([one_reason] * 3, 10) == "medium"
        assert risk_level([two_reasons], 10) == "medium"
        assert risk_level([one_reason] * 6, 10) == "high"
        assert risk_level([SuspiciousChange(change=record, reasons=list("abcd"))], 10) == "high"


class TestAuditLog:
    def test_audit_line_has_counts_only(self, tmp_path):
        records = [make_record("#1", "Contact ops@example.com")]
        result = Redactor().redact_changes(records)
        path = audit_redaction_run(result.report, run_label="v1.2.0", risk="low", root=str(tmp_path))
        line = json.loads(path.read_text(encoding="utf-8").strip())
        assert line["run"] == "v1.2.0"
        assert line["total"] == 1
        assert line["redacted"] == 1
        assert line["fields"] == ["title"]
        assert "ops@example.com" not in path.read_text(encoding="utf-8")
