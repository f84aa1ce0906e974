"""Decaying candidate scores and hysteresis-gated selection.

Every profile field keeps a small map of candidate values. Each accepted
signal adds ``source_weight * confidence`` to the candidate for its
normalized value; scores halve every ``half_life_days`` of inactivity.
Selection picks the highest decayed score, but only switches away from
the current value when the challenger clears both the activation
threshold and the margin over the runner-up.

Shared by the identity fields and the personality dimensions.
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

DAY_MS = 24 * 60 * 60 * 1000

MAX_EVIDENCE_PER_CANDIDATE = 8
SOURCE_WEIGHT_RANGE = (0.15, 1.2)
SIGNAL_CONFIDENCE_FLOOR = 0.05
# Selected confidence must move at least this much to count as a change.
CONFIDENCE_CHANGE_EPSILON = 0.015


def clamp(value: Any, low: float = 0.0, high: float = 1.0) -> float:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return low
    if not math.isfinite(num):
        return low
    return max(low, min(high, num))


def _as_int(value: Any) -> int:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return 0
    return int(num) if math.isfinite(num) else 0


def _as_float(value: Any) -> float:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return 0.0
    return num if math.isfinite(num) else 0.0


def normalize_whitespace(value: Any) -> str:
    return " ".join(str(value or "").split())


def normalize_candidate_key(value: Any) -> str:
    return normalize_whitespace(value).lower()


def decayed_score(score: float, last_seen_at: int, half_life_days: float, now_ms: int) -> float:
    """Exponential decay: ``score * 0.5 ** (age / half_life)``.

    The half-life is floored at one day. A candidate with no timestamp does
    not decay.
    """
    safe = max(0.0, float(score or 0))
    if safe <= 0:
        return 0.0
    if not last_seen_at or last_seen_at <= 0:
        return safe
    age_ms = max(0, now_ms - last_seen_at)
    half_life_ms = max(DAY_MS, half_life_days * DAY_MS)
    return safe * math.pow(0.5, age_ms / half_life_ms)


@dataclass
class FieldConfig:
    """Decay and threshold settings for one field or dimension."""

    half_life_days: float = 90
    min_activation: float = 0.34
    min_margin: float = 0.08
    max_chars: int = 80
    allowed_values: tuple[str, ...] = ()
    stability_band: float = 0.0
    max_candidates: int = 12

    def __post_init__(self) -> None:
        self.half_life_days = clamp(self.half_life_days, 3, 720)
        self.min_activation = clamp(self.min_activation, 0.05, 1)
        self.min_margin = clamp(self.min_margin, 0.02, 0.5)
        self.max_chars = int(clamp(self.max_chars, 8, 320))
        self.stability_band = clamp(self.stability_band, 0, 1)
        self.max_candidates = max(1, int(self.max_candidates))


@dataclass
class Signal:
    """One timestamped observation asserting a value for a field."""

    field_key: str
    value: str
    confidence: float
    source: str = "unknown"
    reason: str = ""
    timestamp_ms: int = 0

    @classmethod
    def from_raw(cls, raw: Signal | Mapping[str, Any], now_ms: int) -> Signal:
        """Normalize a signal record coming from an extractor or a JSON file."""
        if isinstance(raw, Signal):
            data: Mapping[str, Any] = raw.to_dict()
        elif isinstance(raw, Mapping):
            data = raw
        else:
            data = {}
        timestamp = _as_int(data.get("timestampMs", data.get("timestamp_ms")))
        return cls(
            field_key=str(data.get("fieldKey") or data.get("field_key") or data.get("field") or "").strip(),
            value=normalize_whitespace(data.get("value")),
            confidence=clamp(data.get("confidence", 0)),
            source=normalize_candidate_key(data.get("source") or "unknown") or "unknown",
            reason=normalize_whitespace(data.get("reason")),
            timestamp_ms=timestamp if timestamp > 0 else now_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fieldKey": self.field_key,
            "value": self.value,
            "confidence": self.confidence,
            "source": self.source,
            "reason": self.reason,
            "timestampMs": self.timestamp_ms,
        }


@dataclass
class Evidence:
    source: str
    confidence: float
    timestamp_ms: int
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "confidence": self.confidence,
            "timestampMs": self.timestamp_ms,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Evidence | None:
        if not isinstance(raw, Mapping):
            return None
        item = cls(
            source=normalize_whitespace(raw.get("source")),
            confidence=clamp(raw.get("confidence", 0)),
            timestamp_ms=_as_int(raw.get("timestampMs")),
            reason=normalize_whitespace(raw.get("reason")),
        )
        if not item.source and not item.reason:
            return None
        return item


def _evidence_ring() -> deque[Evidence]:
    return deque(maxlen=MAX_EVIDENCE_PER_CANDIDATE)


@dataclass
class Candidate:
    """Accumulated, decaying support for one value of one field.

    ``score`` is the raw score as of ``last_seen_at``; callers read it
    through :func:`decayed_score`. ``evidence`` is newest-first and bounded.
    """

    value: str
    score: float = 0.0
    confidence: float = 0.0
    source: str = ""
    first_seen_at: int = 0
    last_seen_at: int = 0
    support_count: int = 0
    contradiction_count: int = 0
    evidence: deque[Evidence] = field(default_factory=_evidence_ring)

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "score": self.score,
            "confidence": self.confidence,
            "source": self.source,
            "firstSeenAt": self.first_seen_at,
            "lastSeenAt": self.last_seen_at,
            "supportCount": self.support_count,
            "contradictionCount": self.contradiction_count,
            "evidence": [item.to_dict() for item in self.evidence],
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Candidate | None:
        if not isinstance(raw, Mapping):
            return None
        value = str(raw.get("value") or "").strip()
        if not value:
            return None
        evidence = _evidence_ring()
        raw_evidence = raw.get("evidence")
        if isinstance(raw_evidence, list):
            for entry in raw_evidence:
                item = Evidence.from_dict(entry)
                if item is not None and len(evidence) < MAX_EVIDENCE_PER_CANDIDATE:
                    evidence.append(item)
        return cls(
            value=value,
            score=max(0.0, _as_float(raw.get("score"))),
            confidence=clamp(raw.get("confidence", 0)),
            source=str(raw.get("source") or "").strip(),
            first_seen_at=_as_int(raw.get("firstSeenAt")),
            last_seen_at=_as_int(raw.get("lastSeenAt")),
            support_count=_as_int(raw.get("supportCount")),
            contradiction_count=_as_int(raw.get("contradictionCount")),
            evidence=evidence,
        )


@dataclass
class FieldState:
    """Selected value plus the candidate map for one field of one user."""

    selected_value: str = ""
    selected_confidence: float = 0.0
    selected_source: str = ""
    selected_updated_at: int = 0
    candidates: dict[str, Candidate] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "selectedValue": self.selected_value,
            "selectedConfidence": self.selected_confidence,
            "selectedSource": self.selected_source,
            "selectedUpdatedAt": self.selected_updated_at,
            "candidates": {key: cand.to_dict() for key, cand in self.candidates.items()},
        }

    @classmethod
    def from_dict(cls, raw: Any) -> FieldState:
        if not isinstance(raw, Mapping):
            return cls()
        candidates: dict[str, Candidate] = {}
        raw_candidates = raw.get("candidates")
        if isinstance(raw_candidates, Mapping):
            for key, entry in raw_candidates.items():
                candidate = Candidate.from_dict(entry)
                if candidate is None:
                    continue
                candidates[str(key or "").strip() or normalize_candidate_key(candidate.value)] = candidate
        return cls(
            selected_value=str(raw.get("selectedValue") or "").strip(),
            selected_confidence=clamp(raw.get("selectedConfidence", 0)),
            selected_source=str(raw.get("selectedSource") or "").strip(),
            selected_updated_at=_as_int(raw.get("selectedUpdatedAt")),
            candidates=candidates,
        )


@dataclass
class RankedCandidate:
    key: str
    candidate: Candidate
    score: float


@dataclass
class SelectionOutcome:
    changed: bool
    selected_value: str
    selected_confidence: float
    top_score: float
    second_score: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "selectedValue": self.selected_value,
            "selectedConfidence": self.selected_confidence,
            "topScore": self.top_score,
            "secondScore": self.second_score,
            "changed": self.changed,
            "reason": self.reason,
        }


def rank_candidates(state: FieldState, config: FieldConfig, now_ms: int) -> list[RankedCandidate]:
    """Positive-scored candidates, best decayed score first, most recent on ties."""
    ranked = [
        RankedCandidate(key, candidate, decayed_score(
            candidate.score, candidate.last_seen_at, config.half_life_days, now_ms
        ))
        for key, candidate in state.candidates.items()
    ]
    ranked = [entry for entry in ranked if entry.score > 0]
    ranked.sort(key=lambda entry: (-entry.score, -entry.candidate.last_seen_at))
    return ranked


def prune_candidates(state: FieldState, config: FieldConfig, now_ms: int) -> list[str]:
    """Evict everything outside the top ``max_candidates``. Returns evicted keys."""
    if len(state.candidates) <= config.max_candidates:
        return []
    ranked = rank_candidates(state, config, now_ms)
    keep = {entry.key for entry in ranked[: config.max_candidates]}
    evicted = [key for key in state.candidates if key not in keep]
    for key in evicted:
        del state.candidates[key]
    return evicted


def upsert_candidate(
    state: FieldState,
    signal: Signal,
    value: str,
    source_weight: float,
    config: FieldConfig,
) -> float:
    """Add one signal's weighted score to its candidate. Returns the weighted score.

    The existing raw score is decayed to the signal's timestamp before the
    new contribution is added, so ``score`` always means "as of last_seen_at".
    """
    weight = clamp(source_weight, *SOURCE_WEIGHT_RANGE)
    confidence = clamp(signal.confidence, SIGNAL_CONFIDENCE_FLOOR, 1)
    weighted = weight * confidence
    key = normalize_candidate_key(value)

    prior_key = normalize_candidate_key(state.selected_value)
    if prior_key and prior_key != key and weighted >= config.min_margin:
        prior = state.candidates.get(prior_key)
        if prior is not None:
            prior.contradiction_count += 1

    ts = signal.timestamp_ms
    candidate = state.candidates.get(key)
    if candidate is None:
        candidate = Candidate(value=value, source=signal.source, first_seen_at=ts, last_seen_at=ts)

    if candidate.last_seen_at <= 0 or ts >= candidate.last_seen_at:
        base = decayed_score(candidate.score, candidate.last_seen_at, config.half_life_days, ts)
        candidate.score = base + weighted
        candidate.last_seen_at = ts
    else:
        # Late signal: decay its contribution up to the candidate's timestamp.
        candidate.score += decayed_score(weighted, ts, config.half_life_days, candidate.last_seen_at)

    candidate.value = value
    candidate.confidence = clamp(max(candidate.confidence * 0.9, confidence))
    candidate.source = signal.source
    if candidate.first_seen_at <= 0 or 0 < ts < candidate.first_seen_at:
        candidate.first_seen_at = ts
    candidate.support_count += 1
    candidate.evidence.appendleft(
        Evidence(
            source=signal.source,
            confidence=signal.confidence,
            timestamp_ms=ts,
            reason=signal.reason,
        )
    )
    state.candidates[key] = candidate
    return weighted


def select_candidate(state: FieldState, config: FieldConfig, now_ms: int) -> SelectionOutcome:
    """Re-run selection for one field with hysteresis.

    The top candidate wins iff its decayed score reaches ``min_activation``
    and either beats the runner-up by ``min_margin`` or already is the
    current selection. A non-zero ``stability_band`` additionally requires
    the challenger to beat the current selection's own score by the band.
    Otherwise the current selection is kept.
    """
    ranked = rank_candidates(state, config, now_ms)
    if not ranked:
        state.selected_value = ""
        state.selected_confidence = 0.0
        state.selected_source = ""
        state.selected_updated_at = 0
        return SelectionOutcome(False, "", 0.0, 0.0, 0.0, "no_candidates")

    top = ranked[0]
    second_score = ranked[1].score if len(ranked) > 1 else 0.0
    margin = top.score - second_score
    prior_key = normalize_candidate_key(state.selected_value)
    keep_current = bool(prior_key) and prior_key == normalize_candidate_key(top.candidate.value)

    reason = "insufficient_margin" if state.selected_value else "below_activation"
    can_activate = top.score >= config.min_activation and (margin >= config.min_margin or keep_current)
    if can_activate and prior_key and not keep_current and config.stability_band > 0:
        current = next((entry for entry in ranked if entry.key == prior_key), None)
        current_score = current.score if current is not None else config.min_activation
        if top.score - current_score < config.stability_band:
            can_activate = False
            reason = "within_stability_band"

    if not can_activate:
        return SelectionOutcome(
            False,
            state.selected_value,
            clamp(state.selected_confidence),
            top.score,
            second_score,
            reason,
        )

    next_value = top.candidate.value.strip()
    dominance = clamp(margin / max(0.0001, top.score + second_score))
    activation_strength = clamp(top.score / max(0.0001, config.min_activation * 2.5))
    candidate_confidence = clamp(top.candidate.confidence)
    next_confidence = clamp(
        candidate_confidence * (0.35 + 0.4 * activation_strength) + dominance * 0.15
    )

    changed = (
        prior_key != normalize_candidate_key(next_value)
        or abs(state.selected_confidence - next_confidence) >= CONFIDENCE_CHANGE_EPSILON
    )
    state.selected_value = next_value
    state.selected_confidence = next_confidence
    state.selected_source = top.candidate.source
    state.selected_updated_at = top.candidate.last_seen_at or now_ms
    return SelectionOutcome(
        changed,
        next_value,
        next_confidence,
        top.score,
        second_score,
        "updated" if changed else "stable",
    )


def apply_to_field(
    state: FieldState,
    signal: Signal,
    value: str,
    source_weight: float,
    config: FieldConfig,
    now_ms: int,
) -> SelectionOutcome:
    """Upsert, evict down to the cap, then reselect."""
    upsert_candidate(state, signal, value, source_weight, config)
    prune_candidates(state, config, now_ms)
    return select_candidate(state, config, now_ms)
