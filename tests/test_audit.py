"""Tests for the JSONL audit trail."""

from __future__ import annotations

import json
from pathlib import Path

from traitcore.audit import MAX_AUDIT_DECISIONS, MAX_AUDIT_SIGNALS, AuditEvent, AuditLog

NOW = 1_700_000_000_000


class TestAuditLog:
    def test_appends_one_line_per_event(self, tmp_path: Path):
        log = AuditLog(tmp_path / "logs" / "audit.jsonl")
        assert log.append(AuditEvent("identity_signal_batch", "bob", NOW))
        assert log.append(AuditEvent("identity_tool_usage", "bob", NOW + 1, extra={"toolUpdates": []}))

        lines = log.path.read_text().splitlines()
        assert len(lines) == 2
        first, second = (json.loads(line) for line in lines)
        assert first["eventType"] == "identity_signal_batch"
        assert first["userId"] == "bob"
        assert first["timestampMs"] == NOW
        assert first["ts"].startswith("2023-11-14T")
        assert second["toolUpdates"] == []

    def test_lists_are_capped(self):
        event = AuditEvent(
            "identity_signal_batch",
            "bob",
            NOW,
            applied_signals=[{"i": i} for i in range(50)],
            rejected_signals=[{"i": i} for i in range(50)],
            decisions=[{"i": i} for i in range(50)],
        )
        data = event.to_dict()
        assert len(data["appliedSignals"]) == MAX_AUDIT_SIGNALS
        assert len(data["rejectedSignals"]) == MAX_AUDIT_SIGNALS
        assert len(data["decisions"]) == MAX_AUDIT_DECISIONS
        assert data["appliedSignals"][0] == {"i": 0}

    def test_write_failure_reported(self, tmp_path: Path):
        blocker = tmp_path / "logs"
        blocker.write_text("not a directory")
        log = AuditLog(blocker / "audit.jsonl")
        assert log.append(AuditEvent("x", "bob", NOW)) is False
