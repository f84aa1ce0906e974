"""Personality profile document and its JSON mapping."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from traitcore.identity.models import Metrics
from traitcore.personality.dimensions import DIMENSIONS
from traitcore.scoring import FieldState, _as_int
from traitcore.storage import normalize_user_id

PERSONALITY_SCHEMA_VERSION = 1


def _empty_dimensions() -> dict[str, FieldState]:
    return {key: FieldState() for key in DIMENSIONS}


@dataclass
class PersonalityProfile:
    user_id: str
    created_at: int
    updated_at: int
    dimensions: dict[str, FieldState] = field(default_factory=_empty_dimensions)
    metrics: Metrics = field(default_factory=Metrics)
    schema_version: int = PERSONALITY_SCHEMA_VERSION

    @classmethod
    def empty(cls, user_id: str, now_ms: int) -> PersonalityProfile:
        return cls(user_id=user_id, created_at=now_ms, updated_at=now_ms)

    def dimension(self, key: str) -> FieldState:
        return self.dimensions.setdefault(key, FieldState())

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "userId": self.user_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "dimensions": {key: self.dimension(key).to_dict() for key in DIMENSIONS},
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, user_id: str, now_ms: int) -> PersonalityProfile:
        raw_dimensions = raw.get("dimensions")
        raw_dimensions = raw_dimensions if isinstance(raw_dimensions, Mapping) else {}
        return cls(
            user_id=normalize_user_id(raw.get("userId")) or user_id,
            created_at=_as_int(raw.get("createdAt")) or now_ms,
            updated_at=_as_int(raw.get("updatedAt")) or now_ms,
            dimensions={key: FieldState.from_dict(raw_dimensions.get(key)) for key in DIMENSIONS},
            metrics=Metrics.from_dict(raw.get("metrics")),
        )
