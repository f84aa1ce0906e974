"""Decayed tool-usage counters.

Unlike profile fields these are never threshold-gated: every use counts,
and the summary simply shows the strongest few.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable

from traitcore.identity.models import AffinityState
from traitcore.scoring import DAY_MS, clamp, normalize_whitespace

AFFINITY_HALF_LIFE_MS = 21 * DAY_MS
AFFINITY_CONFIDENCE_CAP = 0.95
SUMMARY_TOP_TOOLS = 3


def affinity_confidence(score: float) -> float:
    """Saturating confidence; approaches but never reaches the cap."""
    if score <= 0:
        return 0.0
    return clamp(0.25 + math.log1p(score) / 2.2, 0, AFFINITY_CONFIDENCE_CAP)


@dataclass
class ToolUpdate:
    tool_name: str
    score: float
    count: int
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "toolName": self.tool_name,
            "score": self.score,
            "count": self.count,
            "confidence": self.confidence,
        }


def update_tool_affinity(
    affinity: dict[str, AffinityState], tool_calls: Iterable[Any], now_ms: int
) -> list[ToolUpdate]:
    """Decay each named tool's score to ``now_ms``, then add one use."""
    updates: list[ToolUpdate] = []
    for call in tool_calls or ():
        raw_name = (call.get("name") or call.get("toolName")) if isinstance(call, dict) else call
        tool = normalize_whitespace(raw_name).lower()
        if not tool:
            continue
        current = affinity.get(tool) or AffinityState()
        age_ms = max(0, now_ms - current.last_used_at) if current.last_used_at > 0 else 0
        score = current.score * math.pow(0.5, age_ms / AFFINITY_HALF_LIFE_MS) + 1
        state = AffinityState(
            score=score,
            count=current.count + 1,
            confidence=affinity_confidence(score),
            last_used_at=now_ms,
        )
        affinity[tool] = state
        updates.append(ToolUpdate(tool, state.score, state.count, state.confidence))
    return updates


def top_tools(affinity: dict[str, AffinityState], limit: int = SUMMARY_TOP_TOOLS) -> list[tuple[str, AffinityState]]:
    """Strongest tools by score, most recently used first on ties."""
    entries = [(name, state) for name, state in affinity.items() if name and state.score > 0]
    entries.sort(key=lambda item: (-item[1].score, -item[1].last_used_at))
    return entries[:limit]
