"""Append-only JSONL decision trail, one line per ingested batch.

The engine only ever writes these files; retention and analysis belong to
external tooling.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

MAX_AUDIT_SIGNALS = 32
MAX_AUDIT_DECISIONS = 24


@dataclass
class AuditEvent:
    """A single audit line."""

    event_type: str
    user_id: str
    timestamp_ms: int
    conversation_id: str = ""
    session_key: str = ""
    source: str = "runtime"
    applied_signals: list[dict[str, Any]] = field(default_factory=list)
    rejected_signals: list[dict[str, Any]] = field(default_factory=list)
    decisions: list[dict[str, Any]] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "ts": datetime.fromtimestamp(self.timestamp_ms / 1000, tz=timezone.utc).isoformat(),
            "timestampMs": self.timestamp_ms,
            "userId": self.user_id,
            "conversationId": self.conversation_id,
            "sessionKey": self.session_key,
            "source": self.source,
            "eventType": self.event_type,
            "appliedSignals": self.applied_signals[:MAX_AUDIT_SIGNALS],
            "rejectedSignals": self.rejected_signals[:MAX_AUDIT_SIGNALS],
            "decisions": self.decisions[:MAX_AUDIT_DECISIONS],
        }
        data.update(self.extra)
        return data


class AuditLog:
    """Writes audit events to a per-user JSONL file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def append(self, event: AuditEvent) -> bool:
        """Append one line. Failures are logged and reported, not raised."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict(), ensure_ascii=False) + "\n")
        except OSError as e:
            logger.warning("Failed to append audit event to %s: %s", self.path, e)
            return False
        return True
