"""Per-response context overlays on top of the stored personality.

Each (context, dimension) pair carries one of three overrides:

    NoOverride      leave the base selection alone
    Floor(value)    raise the base to ``value`` if it currently sits lower
    Strict(value)   replace the base, even when nothing is selected yet

Resolution returns new ``ResolvedDimension`` values and never touches the
stored profile.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from traitcore.personality.dimensions import DIMENSIONS
from traitcore.scoring import FieldState, clamp, normalize_candidate_key


@dataclass(frozen=True)
class NoOverride:
    pass


@dataclass(frozen=True)
class Floor:
    value: str


@dataclass(frozen=True)
class Strict:
    value: str


Override = Union[NoOverride, Floor, Strict]

CONTEXT_OVERLAYS: dict[str, dict[str, Override]] = {
    "coding": {
        "structure_preference": Strict("structured"),
        "proactivity": Floor("proactive"),
        "challenge_level": Strict("challenger"),
        "humor_level": NoOverride(),
    },
    "planning": {
        "structure_preference": Strict("structured"),
        "proactivity": Floor("proactive"),
        "challenge_level": NoOverride(),
        "humor_level": NoOverride(),
    },
    "personal": {
        "challenge_level": Strict("supportive"),
        "structure_preference": Strict("freeform"),
        "humor_level": Floor("subtle"),
        "risk_tolerance": NoOverride(),
    },
    "finance": {
        "risk_tolerance": Strict("conservative"),
        "structure_preference": Strict("structured"),
        "humor_level": Strict("none"),
        "challenge_level": NoOverride(),
    },
    "research": {
        "structure_preference": Strict("structured"),
        "challenge_level": Strict("neutral"),
        "proactivity": Floor("balanced"),
        "humor_level": NoOverride(),
    },
    "operations": {
        "structure_preference": Strict("structured"),
        "proactivity": Floor("proactive"),
        "challenge_level": NoOverride(),
        "humor_level": NoOverride(),
    },
}


@dataclass(frozen=True)
class ResolvedDimension:
    value: str
    confidence: float
    source: str = ""
    overlay_applied: bool = False

    @classmethod
    def from_state(cls, state: FieldState) -> ResolvedDimension:
        return cls(state.selected_value, clamp(state.selected_confidence), state.selected_source)


def resolve_override(dimension_key: str, base: ResolvedDimension, override: Override) -> ResolvedDimension:
    """Apply one override to one base value."""
    dimension = DIMENSIONS.get(dimension_key)
    if dimension is None or isinstance(override, NoOverride):
        return base
    target = dimension.index(override.value)
    if target < 0:
        return base

    if isinstance(override, Strict):
        confidence = base.confidence if base.value else 0.0
        return ResolvedDimension(override.value, confidence, base.source, overlay_applied=True)

    # Floor
    if not base.value or target <= dimension.index(base.value):
        return base
    return ResolvedDimension(override.value, base.confidence, base.source, overlay_applied=True)


def apply_context_overlay(
    dimensions: dict[str, FieldState], context: str | None
) -> dict[str, ResolvedDimension]:
    """Resolve every dimension for ``context``; unknown contexts pass through."""
    resolved = {
        key: ResolvedDimension.from_state(dimensions.get(key) or FieldState()) for key in DIMENSIONS
    }
    overlay = CONTEXT_OVERLAYS.get(normalize_candidate_key(context))
    if not overlay:
        return resolved
    for key, override in overlay.items():
        if key in resolved:
            resolved[key] = resolve_override(key, resolved[key], override)
    return resolved
