"""Personality engine: ordered behaviour dimensions with context overlays.

Uses the same candidate scoring and hysteresis as identity fields, plus a
per-dimension stability band. Overlays are applied at render time only.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from traitcore.audit import AuditEvent, AuditLog
from traitcore.config import PersonalityConfig, TraitConfig
from traitcore.identity.engine import DISABLED_MISSING_USER, now_ms
from traitcore.personality.dimensions import DIMENSION_INSTRUCTIONS, DIMENSIONS, normalize_source, source_weight
from traitcore.personality.models import PERSONALITY_SCHEMA_VERSION, PersonalityProfile
from traitcore.personality.overlay import apply_context_overlay
from traitcore.render import fit_lines
from traitcore.scoring import Signal, apply_to_field, normalize_whitespace
from traitcore.sensitive import SensitivePolicy
from traitcore.storage import DocumentStore, ProfilePaths, resolve_paths

logger = logging.getLogger(__name__)

PROFILE_FILE_NAME = "personality-profile.json"
AUDIT_FILE_NAME = "personality-profile.jsonl"
DISPLAY_MIN_CONFIDENCE = 0.5
HEADER = "Personality calibration (per-user, context-aware):"
FOOTER = "- Explicit instructions in the current request take precedence over these defaults."


def default_policy() -> SensitivePolicy:
    # "conservative" is a risk scale value, not a political label here.
    return SensitivePolicy(allowed_classes_by_field={"risk_tolerance": frozenset({"political_affiliation"})})


@dataclass
class PersonalityBatchResult:
    user_id: str
    profile: PersonalityProfile
    prompt_section: str = ""
    applied_signals: list[dict[str, Any]] = field(default_factory=list)
    rejected_signals: list[dict[str, Any]] = field(default_factory=list)
    decisions: list[dict[str, Any]] = field(default_factory=list)
    persisted: bool = False
    recovered_corrupt_path: str = ""
    disabled_reason: str = ""


@dataclass
class PersonalityLoadResult:
    user_id: str
    profile: PersonalityProfile
    prompt_section: str = ""
    created_fresh: bool = True
    recovered_corrupt_path: str = ""
    disabled_reason: str = ""


class PersonalityEngine:
    def __init__(
        self,
        data_dir: Path,
        config: PersonalityConfig | None = None,
        policy: SensitivePolicy | None = None,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.config = config or PersonalityConfig()
        self.policy = policy or default_policy()

    @classmethod
    def from_config(cls, config: TraitConfig) -> PersonalityEngine:
        return cls(config.data_dir, config.personality)

    def paths(self, user_id: str) -> ProfilePaths | None:
        return resolve_paths(self.data_dir, user_id)

    def _store(self, paths: ProfilePaths) -> DocumentStore:
        return DocumentStore(paths.document(PROFILE_FILE_NAME), PERSONALITY_SCHEMA_VERSION)

    def _load_profile(self, paths: ProfilePaths, now: int) -> tuple[PersonalityProfile, bool, str]:
        loaded = self._store(paths).read(now)
        if loaded.payload is None:
            return PersonalityProfile.empty(paths.user_id, now), True, loaded.recovered_corrupt_path
        return PersonalityProfile.from_dict(loaded.payload, user_id=paths.user_id, now_ms=now), False, ""

    # ── Rendering ─────────────────────────────────────────────

    def render(
        self,
        profile: PersonalityProfile | None,
        context: str | None = None,
        now: int | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Instruction lines for each displayable dimension after the context overlay."""
        if profile is None or not profile.user_id:
            return ""
        resolved = apply_context_overlay(profile.dimensions, context)
        lines = []
        for key, dimension in DIMENSIONS.items():
            entry = resolved[key]
            if not entry.value:
                continue
            if not entry.overlay_applied and entry.confidence < DISPLAY_MIN_CONFIDENCE:
                continue
            instruction = DIMENSION_INSTRUCTIONS[key].get(entry.value, "")
            suffix = f" [context: {normalize_whitespace(context).lower()}]" if entry.overlay_applied else ""
            lines.append(f"- {dimension.label} ({entry.value}): {instruction}{suffix}")
        budget = max_tokens if max_tokens is not None else self.config.prompt_max_tokens
        return fit_lines(HEADER, lines, FOOTER, budget)

    # ── Operations ────────────────────────────────────────────

    def _apply(
        self, profile: PersonalityProfile, raw: Signal | Mapping[str, Any], now: int
    ) -> tuple[dict[str, Any], dict[str, Any] | None, bool]:
        """Returns (record, decision or None, blocked)."""
        signal = Signal.from_raw(raw, now)
        signal.source = normalize_source(signal.source)
        record = signal.to_dict()
        if not signal.field_key or not signal.value:
            return {**record, "rejectedReason": "missing_field_or_value", "blocked": False}, None, False
        dimension = DIMENSIONS.get(signal.field_key)
        if dimension is None:
            return {**record, "rejectedReason": "unknown_field", "blocked": False}, None, False
        value = dimension.sanitize(signal.value)
        if not value:
            return {**record, "rejectedReason": "invalid_or_blocked_value", "blocked": True}, None, True
        decision = self.policy.check(signal.source, dimension.key, value)
        if not decision.allowed:
            return {**record, "rejectedReason": decision.reason, "blocked": True}, None, True

        selection = apply_to_field(
            profile.dimension(dimension.key),
            signal,
            value,
            source_weight(signal.source),
            dimension.config,
            now,
        )
        record = {**record, "sanitizedValue": value, "applyReason": selection.reason}
        return record, {"fieldKey": dimension.key, **selection.to_dict()}, False

    def ingest(
        self,
        user_id: str,
        signals: Iterable[Signal | Mapping[str, Any]],
        *,
        event_type: str = "personality_signal_batch",
        conversation_id: str = "",
        session_key: str = "",
        source: str = "runtime",
        context: str | None = None,
        now: int | None = None,
        max_prompt_tokens: int | None = None,
    ) -> PersonalityBatchResult:
        now = now if now is not None else now_ms()
        paths = self.paths(user_id)
        if paths is None:
            return PersonalityBatchResult(
                user_id="",
                profile=PersonalityProfile.empty("", now),
                disabled_reason=DISABLED_MISSING_USER,
            )

        profile, _, recovered = self._load_profile(paths, now)
        applied: list[dict[str, Any]] = []
        rejected: list[dict[str, Any]] = []
        decisions: list[dict[str, Any]] = []
        blocked = 0
        for raw in signals or ():
            record, decision, was_blocked = self._apply(profile, raw, now)
            if decision is None:
                rejected.append(record)
                blocked += int(was_blocked)
                continue
            applied.append(record)
            decisions.append(decision)

        metrics = profile.metrics
        metrics.applied_signals += len(applied)
        metrics.rejected_signals += len(rejected)
        metrics.blocked_signals += blocked
        metrics.contradiction_resolutions += sum(
            1 for d in decisions if d["changed"] and d["secondScore"] > 0
        )
        metrics.last_decision_at = now
        profile.updated_at = now

        persisted = self._store(paths).write(profile.to_dict())
        AuditLog(paths.audit(AUDIT_FILE_NAME)).append(
            AuditEvent(
                event_type=event_type,
                user_id=paths.user_id,
                timestamp_ms=now,
                conversation_id=normalize_whitespace(conversation_id),
                session_key=normalize_whitespace(session_key),
                source=normalize_whitespace(source).lower() or "runtime",
                applied_signals=applied,
                rejected_signals=rejected,
                decisions=decisions,
                extra={"recoveredCorruptPath": recovered},
            )
        )
        logger.debug(
            "Personality batch for %s: applied=%d rejected=%d", paths.user_id, len(applied), len(rejected)
        )
        return PersonalityBatchResult(
            user_id=paths.user_id,
            profile=profile,
            prompt_section=self.render(profile, context, now, max_prompt_tokens),
            applied_signals=applied,
            rejected_signals=rejected,
            decisions=decisions,
            persisted=persisted,
            recovered_corrupt_path=recovered,
        )

    def load(
        self,
        user_id: str,
        *,
        context: str | None = None,
        now: int | None = None,
        max_prompt_tokens: int | None = None,
    ) -> PersonalityLoadResult:
        now = now if now is not None else now_ms()
        paths = self.paths(user_id)
        if paths is None:
            return PersonalityLoadResult(
                user_id="",
                profile=PersonalityProfile.empty("", now),
                disabled_reason=DISABLED_MISSING_USER,
            )
        profile, created_fresh, recovered = self._load_profile(paths, now)
        return PersonalityLoadResult(
            user_id=paths.user_id,
            profile=profile,
            prompt_section=self.render(profile, context, now, max_prompt_tokens),
            created_fresh=created_fresh,
            recovered_corrupt_path=recovered,
        )
