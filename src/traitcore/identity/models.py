"""Identity snapshot document and its JSON mapping."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from traitcore.identity.fields import FIELDS_BY_GROUP, FieldGroup, FieldKey
from traitcore.scoring import FieldState, _as_float, _as_int, clamp
from traitcore.storage import normalize_user_id

IDENTITY_SCHEMA_VERSION = 1


@dataclass
class AffinityState:
    score: float = 0.0
    count: int = 0
    confidence: float = 0.0
    last_used_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "count": self.count,
            "confidence": self.confidence,
            "lastUsedAt": self.last_used_at,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> AffinityState | None:
        if not isinstance(raw, Mapping):
            return None
        return cls(
            score=max(0.0, _as_float(raw.get("score"))),
            count=_as_int(raw.get("count")),
            confidence=clamp(raw.get("confidence", 0)),
            last_used_at=_as_int(raw.get("lastUsedAt")),
        )


@dataclass
class Metrics:
    applied_signals: int = 0
    rejected_signals: int = 0
    blocked_signals: int = 0
    contradiction_resolutions: int = 0
    last_decision_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "appliedSignals": self.applied_signals,
            "rejectedSignals": self.rejected_signals,
            "blockedSignals": self.blocked_signals,
            "contradictionResolutions": self.contradiction_resolutions,
            "lastDecisionAt": self.last_decision_at,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Metrics:
        if not isinstance(raw, Mapping):
            return cls()
        return cls(
            applied_signals=_as_int(raw.get("appliedSignals")),
            rejected_signals=_as_int(raw.get("rejectedSignals")),
            blocked_signals=_as_int(raw.get("blockedSignals")),
            contradiction_resolutions=_as_int(raw.get("contradictionResolutions")),
            last_decision_at=_as_int(raw.get("lastDecisionAt")),
        )


def _empty_fields() -> dict[FieldKey, FieldState]:
    return {key: FieldState() for key in FieldKey}


@dataclass
class IdentitySnapshot:
    """Everything persisted for one user's identity profile."""

    user_id: str
    created_at: int
    updated_at: int
    fields: dict[FieldKey, FieldState] = field(default_factory=_empty_fields)
    intent_expires_at: int = 0
    last_conversation_id: str = ""
    tool_affinity: dict[str, AffinityState] = field(default_factory=dict)
    metrics: Metrics = field(default_factory=Metrics)
    schema_version: int = IDENTITY_SCHEMA_VERSION

    @classmethod
    def empty(cls, user_id: str, now_ms: int) -> IdentitySnapshot:
        return cls(user_id=user_id, created_at=now_ms, updated_at=now_ms)

    def field_state(self, key: FieldKey) -> FieldState:
        return self.fields.setdefault(key, FieldState())

    def intent_is_fresh(self, now_ms: int) -> bool:
        return self.intent_expires_at > now_ms

    def to_dict(self) -> dict[str, Any]:
        groups: dict[str, dict[str, Any]] = {}
        for group, keys in FIELDS_BY_GROUP.items():
            groups[group.value] = {key.field: self.field_state(key).to_dict() for key in keys}
        intent = groups[FieldGroup.TEMPORAL_SESSION_INTENT.value]
        intent["lastConversationId"] = self.last_conversation_id
        intent["expiresAt"] = self.intent_expires_at
        return {
            "schemaVersion": self.schema_version,
            "userId": self.user_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            **groups,
            "toolAffinity": {name: state.to_dict() for name, state in self.tool_affinity.items()},
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, user_id: str, now_ms: int) -> IdentitySnapshot:
        """Rebuild a snapshot, dropping anything malformed field by field."""
        fields: dict[FieldKey, FieldState] = {}
        for group, keys in FIELDS_BY_GROUP.items():
            raw_group = raw.get(group.value)
            raw_group = raw_group if isinstance(raw_group, Mapping) else {}
            for key in keys:
                fields[key] = FieldState.from_dict(raw_group.get(key.field))
        raw_intent = raw.get(FieldGroup.TEMPORAL_SESSION_INTENT.value)
        raw_intent = raw_intent if isinstance(raw_intent, Mapping) else {}

        tool_affinity: dict[str, AffinityState] = {}
        raw_affinity = raw.get("toolAffinity")
        if isinstance(raw_affinity, Mapping):
            for name, entry in raw_affinity.items():
                tool = str(name or "").strip().lower()
                state = AffinityState.from_dict(entry)
                if tool and state is not None:
                    tool_affinity[tool] = state

        created_at = _as_int(raw.get("createdAt"))
        updated_at = _as_int(raw.get("updatedAt"))
        return cls(
            user_id=normalize_user_id(raw.get("userId")) or user_id,
            created_at=created_at or now_ms,
            updated_at=updated_at or now_ms,
            fields=fields,
            intent_expires_at=_as_int(raw_intent.get("expiresAt")),
            last_conversation_id=str(raw_intent.get("lastConversationId") or "").strip(),
            tool_affinity=tool_affinity,
            metrics=Metrics.from_dict(raw.get("metrics")),
        )
