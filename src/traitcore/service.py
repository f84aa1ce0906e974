"""Async facade over the identity and personality engines.

Responsibilities:
1. Lane locks: optionally serialize writes per user id
2. Run the blocking engine calls off the event loop
3. Assemble the combined prompt context, with the session intent
   selecting the personality overlay
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Iterable, Mapping
from contextlib import nullcontext
from typing import Any

from traitcore.config import TraitConfig
from traitcore.identity.engine import BatchResult, IdentityEngine, ToolUsageResult, now_ms
from traitcore.identity.fields import FieldKey
from traitcore.personality.engine import PersonalityBatchResult, PersonalityEngine
from traitcore.scoring import Signal
from traitcore.storage import normalize_user_id

logger = logging.getLogger(__name__)


class ProfileService:
    """Per-user profile access for asyncio callers."""

    def __init__(
        self,
        config: TraitConfig,
        identity: IdentityEngine | None = None,
        personality: PersonalityEngine | None = None,
    ) -> None:
        self.config = config
        self.identity = identity or IdentityEngine.from_config(config)
        self.personality = personality or PersonalityEngine.from_config(config)
        # Entries drop out once no coroutine holds or waits on the lock.
        self._lane_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    # ── Lane Queue (per-user serialization) ──────────────────

    def _get_lane_lock(self, user_id: str) -> asyncio.Lock:
        lock = self._lane_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._lane_locks[user_id] = lock
        return lock

    def _lane(self, user_id: str):
        if not self.config.serialize_user_writes:
            return nullcontext()
        return self._get_lane_lock(normalize_user_id(user_id))

    # ── Writes ────────────────────────────────────────────────

    async def ingest_identity(
        self, user_id: str, signals: Iterable[Signal | Mapping[str, Any]], **kwargs: Any
    ) -> BatchResult:
        async with self._lane(user_id):
            return await asyncio.to_thread(self.identity.ingest, user_id, signals, **kwargs)

    async def ingest_personality(
        self, user_id: str, signals: Iterable[Signal | Mapping[str, Any]], **kwargs: Any
    ) -> PersonalityBatchResult:
        async with self._lane(user_id):
            return await asyncio.to_thread(self.personality.ingest, user_id, signals, **kwargs)

    async def record_tool_usage(self, user_id: str, tool_calls: Iterable[Any], **kwargs: Any) -> ToolUsageResult:
        async with self._lane(user_id):
            return await asyncio.to_thread(self.identity.record_tool_usage, user_id, tool_calls, **kwargs)

    async def sync_settings_seed(self, user_id: str, **kwargs: Any) -> BatchResult:
        async with self._lane(user_id):
            return await asyncio.to_thread(self.identity.sync_settings_seed, user_id, **kwargs)

    # ── Reads ─────────────────────────────────────────────────

    def _read_context(self, user_id: str, now: int) -> str:
        loaded = self.identity.load(user_id, now=now)
        if loaded.disabled_reason:
            return ""
        snapshot = loaded.snapshot
        context = None
        if snapshot.intent_is_fresh(now):
            context = snapshot.field_state(FieldKey.CURRENT_INTENT).selected_value or None
        personality = self.personality.load(user_id, context=context, now=now)
        logger.debug("Context for %s: intent=%s", loaded.user_id, context)
        sections = [loaded.prompt_section, personality.prompt_section]
        return "\n\n".join(section for section in sections if section)

    async def gather_context(self, user_id: str, *, now: int | None = None) -> str:
        """Identity summary plus personality instructions for one response.

        A fresh session intent picks the personality overlay.
        """
        now = now if now is not None else now_ms()
        async with self._lane(user_id):
            return await asyncio.to_thread(self._read_context, user_id, now)
