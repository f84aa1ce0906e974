"""Identity engine: turns signal batches into a consolidated profile.

Pipeline per signal: field lookup → sanitize → sensitive policy →
candidate update → decay + selection. Per batch: session-intent TTL,
metrics, synchronous persist, one audit line.

Calls for the same user are not serialized here; concurrent batches for
one user are last-writer-wins. See ``traitcore.service`` for the
per-user lock used by asyncio callers.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from traitcore.audit import AuditEvent, AuditLog
from traitcore.config import IdentityConfig, TraitConfig
from traitcore.identity.affinity import ToolUpdate, update_tool_affinity
from traitcore.identity.fields import FIELD_CONFIG, FieldKey, normalize_source, source_weight
from traitcore.identity.models import IDENTITY_SCHEMA_VERSION, IdentitySnapshot
from traitcore.identity.prompt import render_summary
from traitcore.identity.sanitize import sanitize
from traitcore.identity.seed import SEED_FILE_NAME, load_seed, signals_from_seed
from traitcore.scoring import SelectionOutcome, Signal, apply_to_field, clamp, normalize_whitespace
from traitcore.sensitive import SensitivePolicy
from traitcore.storage import DocumentStore, ProfilePaths, resolve_paths

logger = logging.getLogger(__name__)

SNAPSHOT_FILE_NAME = "identity-intelligence.json"
AUDIT_FILE_NAME = "identity-intelligence.jsonl"
DISABLED_MISSING_USER = "missing_user_context"
INTENT_MIN_CONFIDENCE = 0.55


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SignalOutcome:
    signal: Signal
    applied: bool
    reason: str
    blocked: bool = False
    field_key: FieldKey | None = None
    value: str = ""
    selection: SelectionOutcome | None = None


@dataclass
class BatchOutcome:
    applied_signals: list[dict[str, Any]] = field(default_factory=list)
    rejected_signals: list[dict[str, Any]] = field(default_factory=list)
    decisions: list[dict[str, Any]] = field(default_factory=list)
    touched: set[FieldKey] = field(default_factory=set)
    contradiction_resolutions: int = 0

    @property
    def blocked_count(self) -> int:
        return sum(1 for item in self.rejected_signals if item.get("blocked"))


@dataclass
class BatchResult:
    user_id: str
    snapshot: IdentitySnapshot
    prompt_section: str = ""
    applied_signals: list[dict[str, Any]] = field(default_factory=list)
    rejected_signals: list[dict[str, Any]] = field(default_factory=list)
    decisions: list[dict[str, Any]] = field(default_factory=list)
    persisted: bool = False
    recovered_corrupt_path: str = ""
    disabled_reason: str = ""
    skipped: bool = False


@dataclass
class ToolUsageResult:
    user_id: str
    snapshot: IdentitySnapshot
    prompt_section: str = ""
    tool_updates: list[ToolUpdate] = field(default_factory=list)
    persisted: bool = False
    recovered_corrupt_path: str = ""
    disabled_reason: str = ""


@dataclass
class LoadResult:
    user_id: str
    snapshot: IdentitySnapshot
    prompt_section: str = ""
    created_fresh: bool = True
    recovered_corrupt_path: str = ""
    disabled_reason: str = ""


class IdentityEngine:
    """Per-user identity trait consolidation backed by JSON files."""

    def __init__(
        self,
        data_dir: Path,
        config: IdentityConfig | None = None,
        policy: SensitivePolicy | None = None,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.config = config or IdentityConfig()
        self.policy = policy or SensitivePolicy.from_settings(self.config)

    @classmethod
    def from_config(cls, config: TraitConfig) -> IdentityEngine:
        return cls(config.data_dir, config.identity)

    # ── Paths & persistence ───────────────────────────────────

    def paths(self, user_id: str) -> ProfilePaths | None:
        return resolve_paths(self.data_dir, user_id)

    def _store(self, paths: ProfilePaths) -> DocumentStore:
        return DocumentStore(paths.document(SNAPSHOT_FILE_NAME), IDENTITY_SCHEMA_VERSION)

    def _audit(self, paths: ProfilePaths) -> AuditLog:
        return AuditLog(paths.audit(AUDIT_FILE_NAME))

    def _load_snapshot(self, paths: ProfilePaths, now: int) -> tuple[IdentitySnapshot, bool, str]:
        loaded = self._store(paths).read(now)
        if loaded.payload is None:
            return IdentitySnapshot.empty(paths.user_id, now), True, loaded.recovered_corrupt_path
        snapshot = IdentitySnapshot.from_dict(loaded.payload, user_id=paths.user_id, now_ms=now)
        return snapshot, False, ""

    def _persist(self, paths: ProfilePaths, snapshot: IdentitySnapshot) -> bool:
        return self._store(paths).write(snapshot.to_dict())

    def render(
        self, snapshot: IdentitySnapshot | None, now: int | None = None, max_tokens: int | None = None
    ) -> str:
        return render_summary(
            snapshot,
            now if now is not None else now_ms(),
            max_tokens if max_tokens is not None else self.config.prompt_max_tokens,
        )

    # ── Pure signal application ───────────────────────────────

    def apply_signal(self, snapshot: IdentitySnapshot, signal: Signal, now: int) -> SignalOutcome:
        """Apply one normalized signal to ``snapshot`` in place."""
        if not signal.field_key or not signal.value:
            return SignalOutcome(signal, False, "missing_field_or_value")

        key = FieldKey.parse(signal.field_key)
        if key is None:
            return SignalOutcome(signal, False, "unknown_field")

        value = sanitize(key, signal.value)
        if not value:
            return SignalOutcome(signal, False, "invalid_or_blocked_value", blocked=True, field_key=key)

        decision = self.policy.check(signal.source, key.path, value)
        if not decision.allowed:
            return SignalOutcome(signal, False, decision.reason, blocked=True, field_key=key)

        selection = apply_to_field(
            snapshot.field_state(key),
            signal,
            value,
            source_weight(signal.source),
            FIELD_CONFIG[key],
            now,
        )
        return SignalOutcome(signal, True, selection.reason, field_key=key, value=value, selection=selection)

    def apply_signals(
        self,
        snapshot: IdentitySnapshot,
        raw_signals: Iterable[Signal | Mapping[str, Any]],
        now: int,
    ) -> BatchOutcome:
        outcome = BatchOutcome()
        for raw in raw_signals or ():
            signal = Signal.from_raw(raw, now)
            signal.source = normalize_source(signal.source)
            result = self.apply_signal(snapshot, signal, now)
            record = signal.to_dict()
            if not result.applied:
                outcome.rejected_signals.append(
                    {**record, "rejectedReason": result.reason, "blocked": result.blocked}
                )
                continue
            outcome.applied_signals.append(
                {**record, "sanitizedValue": result.value, "applyReason": result.reason}
            )
            outcome.touched.add(result.field_key)
            selection = result.selection
            outcome.decisions.append({"fieldKey": result.field_key.path, **selection.to_dict()})
            if selection.changed and selection.second_score > 0:
                outcome.contradiction_resolutions += 1
        return outcome

    def _update_intent(
        self, snapshot: IdentitySnapshot, outcome: BatchOutcome, conversation_id: str, now: int
    ) -> None:
        if FieldKey.CURRENT_INTENT not in outcome.touched:
            return
        state = snapshot.field_state(FieldKey.CURRENT_INTENT)
        if state.selected_value and clamp(state.selected_confidence) >= INTENT_MIN_CONFIDENCE:
            snapshot.intent_expires_at = now + self.config.intent_ttl_ms
            snapshot.last_conversation_id = normalize_whitespace(conversation_id)
        else:
            snapshot.intent_expires_at = 0

    # ── Public operations ─────────────────────────────────────

    def ingest(
        self,
        user_id: str,
        signals: Iterable[Signal | Mapping[str, Any]],
        *,
        event_type: str = "identity_signal_batch",
        conversation_id: str = "",
        session_key: str = "",
        source: str = "runtime",
        now: int | None = None,
        max_prompt_tokens: int | None = None,
    ) -> BatchResult:
        """Apply a signal batch, persist the snapshot, append one audit line."""
        now = now if now is not None else now_ms()
        paths = self.paths(user_id)
        if paths is None:
            logger.debug("Identity ingest skipped: no user id")
            return BatchResult(
                user_id="",
                snapshot=IdentitySnapshot.empty("", now),
                disabled_reason=DISABLED_MISSING_USER,
            )

        snapshot, _, recovered = self._load_snapshot(paths, now)
        outcome = self.apply_signals(snapshot, signals, now)
        self._update_intent(snapshot, outcome, conversation_id, now)

        metrics = snapshot.metrics
        metrics.applied_signals += len(outcome.applied_signals)
        metrics.rejected_signals += len(outcome.rejected_signals)
        metrics.blocked_signals += outcome.blocked_count
        metrics.contradiction_resolutions += outcome.contradiction_resolutions
        metrics.last_decision_at = now
        snapshot.updated_at = now

        persisted = self._persist(paths, snapshot)
        self._audit(paths).append(
            AuditEvent(
                event_type=event_type,
                user_id=paths.user_id,
                timestamp_ms=now,
                conversation_id=normalize_whitespace(conversation_id),
                session_key=normalize_whitespace(session_key),
                source=normalize_whitespace(source).lower() or "runtime",
                applied_signals=outcome.applied_signals,
                rejected_signals=outcome.rejected_signals,
                decisions=outcome.decisions,
                extra={"recoveredCorruptPath": recovered},
            )
        )
        logger.debug(
            "Identity batch %s for %s: applied=%d rejected=%d blocked=%d",
            event_type,
            paths.user_id,
            len(outcome.applied_signals),
            len(outcome.rejected_signals),
            outcome.blocked_count,
        )
        return BatchResult(
            user_id=paths.user_id,
            snapshot=snapshot,
            prompt_section=self.render(snapshot, now, max_prompt_tokens),
            applied_signals=outcome.applied_signals,
            rejected_signals=outcome.rejected_signals,
            decisions=outcome.decisions,
            persisted=persisted,
            recovered_corrupt_path=recovered,
        )

    def record_tool_usage(
        self,
        user_id: str,
        tool_calls: Iterable[Any],
        *,
        conversation_id: str = "",
        session_key: str = "",
        source: str = "runtime",
        now: int | None = None,
        max_prompt_tokens: int | None = None,
    ) -> ToolUsageResult:
        """Bump decayed usage counters for each named tool."""
        now = now if now is not None else now_ms()
        paths = self.paths(user_id)
        if paths is None:
            return ToolUsageResult(
                user_id="",
                snapshot=IdentitySnapshot.empty("", now),
                disabled_reason=DISABLED_MISSING_USER,
            )

        snapshot, _, recovered = self._load_snapshot(paths, now)
        updates = update_tool_affinity(snapshot.tool_affinity, tool_calls, now)
        if not updates:
            return ToolUsageResult(
                user_id=paths.user_id,
                snapshot=snapshot,
                prompt_section=self.render(snapshot, now, max_prompt_tokens),
                recovered_corrupt_path=recovered,
            )

        snapshot.updated_at = now
        snapshot.metrics.last_decision_at = now
        persisted = self._persist(paths, snapshot)
        self._audit(paths).append(
            AuditEvent(
                event_type="identity_tool_usage",
                user_id=paths.user_id,
                timestamp_ms=now,
                conversation_id=normalize_whitespace(conversation_id),
                session_key=normalize_whitespace(session_key),
                source=normalize_whitespace(source).lower() or "runtime",
                extra={
                    "toolUpdates": [update.to_dict() for update in updates],
                    "recoveredCorruptPath": recovered,
                },
            )
        )
        return ToolUsageResult(
            user_id=paths.user_id,
            snapshot=snapshot,
            prompt_section=self.render(snapshot, now, max_prompt_tokens),
            tool_updates=updates,
            persisted=persisted,
            recovered_corrupt_path=recovered,
        )

    def load(
        self, user_id: str, *, now: int | None = None, max_prompt_tokens: int | None = None
    ) -> LoadResult:
        """Read (or synthesize) the snapshot without mutating it."""
        now = now if now is not None else now_ms()
        paths = self.paths(user_id)
        if paths is None:
            return LoadResult(
                user_id="",
                snapshot=IdentitySnapshot.empty("", now),
                disabled_reason=DISABLED_MISSING_USER,
            )
        snapshot, created_fresh, recovered = self._load_snapshot(paths, now)
        return LoadResult(
            user_id=paths.user_id,
            snapshot=snapshot,
            prompt_section=self.render(snapshot, now, max_prompt_tokens),
            created_fresh=created_fresh,
            recovered_corrupt_path=recovered,
        )

    def summary(self, user_id: str, *, now: int | None = None, max_tokens: int | None = None) -> str:
        return self.load(user_id, now=now, max_prompt_tokens=max_tokens).prompt_section

    def sync_settings_seed(
        self,
        user_id: str,
        *,
        conversation_id: str = "",
        now: int | None = None,
        max_prompt_tokens: int | None = None,
    ) -> BatchResult:
        """Ingest the user's settings seed file as ``settings_sync`` signals."""
        now = now if now is not None else now_ms()
        paths = self.paths(user_id)
        if paths is None:
            return BatchResult(
                user_id="",
                snapshot=IdentitySnapshot.empty("", now),
                disabled_reason=DISABLED_MISSING_USER,
            )
        meta = load_seed(paths.document(SEED_FILE_NAME))
        signals = signals_from_seed(meta, now) if meta else []
        if not signals:
            return BatchResult(
                user_id=paths.user_id,
                snapshot=self._load_snapshot(paths, now)[0],
                skipped=True,
            )
        return self.ingest(
            user_id,
            signals,
            event_type="identity_settings_seed",
            conversation_id=conversation_id,
            source="settings_sync",
            now=now,
            max_prompt_tokens=max_prompt_tokens,
        )
