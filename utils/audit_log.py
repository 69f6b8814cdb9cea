#!/usr/bin/env python3
"""Append-only audit logs for redaction runs."""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Dict, Optional

from utils.redactor import RedactionReport


def audit_redaction_run(
    report: RedactionReport,
    *,
    run_label: str = "",
    risk: Optional[str] = None,
    details: Optional[Dict] = None,
    root: str = ".cache/changelog/audit",
) -> Path:
    """Append a single JSON line with safe metadata.

    Fields: ts, run, total, redacted, fields, patterns, risk, details.
    Only counts, field names and pattern categories are recorded; never content.
    """
    safe = (run_label or "run").replace("/", "#").replace(os.sep, "#")
    path = Path(root) / f"{safe}.redaction.audit.log"
    path.parent.mkdir(parents=True, exist_ok=True)
    record = {
        "ts": int(time.time()),
        "run": run_label,
        "total": report.total_changes,
        "redacted": report.redacted_count,
        "fields": list(report.redacted_fields),
        "patterns": list(report.suspicious_patterns),
        "risk": risk,
        "details": details or {},
    }
    line = json.dumps(record, separators=(",", ":")) + "\n"
    # Simple append; fsync for durability
    with open(path, "a", encoding="utf-8") as f:
        f.write(line)
        f.flush()
        os.fsync(f.fileno())
    return path
