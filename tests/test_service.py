"""Tests for the async profile service."""

from __future__ import annotations

import asyncio
import gc
import threading
import time
from pathlib import Path

import pytest

from traitcore.config import TraitConfig
from traitcore.identity.fields import FieldKey
from traitcore.service import ProfileService

NOW = 1_700_000_000_000


def _service(tmp_path: Path, serialize: bool = True) -> ProfileService:
    return ProfileService(TraitConfig(data_dir=tmp_path, serialize_user_writes=serialize))


class _OverlapTracker:
    """Blocking identity stand-in that records how many calls overlap."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self.active = 0
        self.peak = 0

    def ingest(self, user_id, signals, **kwargs):
        with self._guard:
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(0.05)
        with self._guard:
            self.active -= 1
        return user_id


def _tracked(tmp_path: Path, serialize: bool) -> tuple[ProfileService, _OverlapTracker]:
    tracker = _OverlapTracker()
    config = TraitConfig(data_dir=tmp_path, serialize_user_writes=serialize)
    return ProfileService(config, identity=tracker), tracker


class TestLaneLocks:
    def test_one_lock_per_user(self, tmp_path: Path):
        service = _service(tmp_path)
        assert service._get_lane_lock("bob") is service._get_lane_lock("bob")
        assert service._get_lane_lock("bob") is not service._get_lane_lock("alice")

    @pytest.mark.asyncio
    async def test_concurrent_batches_all_applied(self, tmp_path: Path):
        service = _service(tmp_path)
        signals = [{"fieldKey": FieldKey.RESPONSE_TONE.path, "value": "calm", "confidence": 0.5}]
        await asyncio.gather(*(service.ingest_identity("bob", signals, now=NOW) for _ in range(5)))
        loaded = service.identity.load("bob", now=NOW)
        assert loaded.snapshot.metrics.applied_signals == 5
        assert loaded.snapshot.field_state(FieldKey.RESPONSE_TONE).candidates["calm"].support_count == 5

    @pytest.mark.asyncio
    async def test_unserialized_mode_works(self, tmp_path: Path):
        service = _service(tmp_path, serialize=False)
        result = await service.record_tool_usage("bob", ["web_search"], now=NOW)
        assert result.persisted
        assert len(service._lane_locks) == 0

    @pytest.mark.asyncio
    async def test_same_user_calls_never_overlap(self, tmp_path: Path):
        service, tracker = _tracked(tmp_path, serialize=True)
        await asyncio.gather(*(service.ingest_identity("bob", []) for _ in range(5)))
        assert tracker.peak == 1

    @pytest.mark.asyncio
    async def test_unserialized_calls_overlap(self, tmp_path: Path):
        service, tracker = _tracked(tmp_path, serialize=False)
        await asyncio.gather(*(service.ingest_identity("bob", []) for _ in range(5)))
        assert tracker.peak > 1

    @pytest.mark.asyncio
    async def test_different_users_run_in_parallel(self, tmp_path: Path):
        service, tracker = _tracked(tmp_path, serialize=True)
        await asyncio.gather(*(service.ingest_identity(f"user{i}", []) for i in range(5)))
        assert tracker.peak > 1

    @pytest.mark.asyncio
    async def test_idle_locks_released(self, tmp_path: Path):
        service = _service(tmp_path)
        await service.record_tool_usage("bob", ["web_search"], now=NOW)
        gc.collect()
        assert "bob" not in service._lane_locks


class TestGatherContext:
    @pytest.mark.asyncio
    async def test_intent_selects_overlay(self, tmp_path: Path):
        service = _service(tmp_path)
        await service.ingest_identity(
            "bob",
            [
                {"fieldKey": FieldKey.PREFERRED_NAME.path, "value": "Bob", "confidence": 0.95, "source": "settings_sync"},
                {"fieldKey": FieldKey.CURRENT_INTENT.path, "value": "finance", "confidence": 1.0, "source": "settings_sync"},
            ],
            now=NOW,
        )
        await service.ingest_personality(
            "bob", [{"field": "humor_level", "value": "playful", "confidence": 0.9, "source": "explicit_correction"}],
            now=NOW,
        )

        context = await service.gather_context("bob", now=NOW + 1000)
        assert "Preferred user name: Bob" in context
        assert "- Humor (none):" in context
        assert "[context: finance]" in context

    @pytest.mark.asyncio
    async def test_expired_intent_uses_base_profile(self, tmp_path: Path):
        service = _service(tmp_path)
        await service.ingest_identity(
            "bob",
            [{"fieldKey": FieldKey.CURRENT_INTENT.path, "value": "finance", "confidence": 1.0, "source": "settings_sync"}],
            now=NOW,
        )
        await service.ingest_personality(
            "bob", [{"field": "humor_level", "value": "playful", "confidence": 0.9, "source": "explicit_correction"}],
            now=NOW,
        )
        later = NOW + service.config.identity.intent_ttl_ms
        context = await service.gather_context("bob", now=later)
        assert "- Humor (playful):" in context
        assert "[context:" not in context

    @pytest.mark.asyncio
    async def test_missing_user(self, tmp_path: Path):
        assert await _service(tmp_path).gather_context("", now=NOW) == ""
