"""Tests for decay, candidate scoring and hysteresis selection."""

from __future__ import annotations

import pytest

from traitcore.scoring import (
    DAY_MS,
    MAX_EVIDENCE_PER_CANDIDATE,
    FieldConfig,
    FieldState,
    Signal,
    apply_to_field,
    clamp,
    decayed_score,
    rank_candidates,
    upsert_candidate,
)

T0 = 1_700_000_000_000


def _signal(value: str, confidence: float, ts: int = T0, source: str = "settings_sync") -> Signal:
    return Signal("stableTraits.communicationStyle", value, confidence, source, "test", ts)


@pytest.fixture
def config() -> FieldConfig:
    return FieldConfig(half_life_days=180, min_activation=0.35, min_margin=0.08)


class TestHelpers:
    def test_clamp_handles_garbage(self):
        assert clamp("abc") == 0.0
        assert clamp(float("nan")) == 0.0
        assert clamp(float("inf"), 0.2, 0.9) == 0.2
        assert clamp(5) == 1.0
        assert clamp(-1) == 0.0

    def test_field_config_clamps(self):
        cfg = FieldConfig(half_life_days=1, min_activation=0.0, min_margin=0.9, max_chars=1000)
        assert cfg.half_life_days == 3
        assert cfg.min_activation == 0.05
        assert cfg.min_margin == 0.5
        assert cfg.max_chars == 320


class TestDecay:
    def test_one_half_life_halves(self):
        assert decayed_score(1.0, T0, 10, T0 + 10 * DAY_MS) == pytest.approx(0.5)

    def test_no_timestamp_no_decay(self):
        assert decayed_score(0.7, 0, 10, T0) == 0.7

    def test_half_life_floored_at_one_day(self):
        assert decayed_score(1.0, T0, 0.01, T0 + DAY_MS) == pytest.approx(0.5)

    def test_monotonic_in_age(self):
        scores = [decayed_score(1.0, T0, 30, T0 + days * DAY_MS) for days in (0, 1, 7, 30, 365)]
        assert scores == sorted(scores, reverse=True)
        assert scores[0] == 1.0

    def test_future_timestamp_does_not_grow(self):
        assert decayed_score(1.0, T0 + DAY_MS, 30, T0) == 1.0


class TestSignalFromRaw:
    def test_mapping_normalized(self):
        signal = Signal.from_raw(
            {"fieldKey": " stableTraits.preferredName ", "value": "  Alex  ", "confidence": 3, "source": "SETTINGS_SYNC"},
            now_ms=T0,
        )
        assert signal.field_key == "stableTraits.preferredName"
        assert signal.value == "Alex"
        assert signal.confidence == 1.0
        assert signal.source == "settings_sync"
        assert signal.timestamp_ms == T0

    def test_field_alias_and_missing_source(self):
        signal = Signal.from_raw({"field": "proactivity", "value": "bold", "confidence": 0.5}, now_ms=T0)
        assert signal.field_key == "proactivity"
        assert signal.source == "unknown"

    def test_signal_object_without_timestamp_gets_now(self):
        signal = Signal.from_raw(Signal("a.b", "x", 0.5), now_ms=T0)
        assert signal.timestamp_ms == T0

    def test_non_mapping_is_empty(self):
        signal = Signal.from_raw("nonsense", now_ms=T0)  # type: ignore[arg-type]
        assert signal.field_key == ""
        assert signal.value == ""


class TestUpsert:
    def test_weighted_score_clamps_weight_and_confidence(self, config):
        state = FieldState()
        weighted = upsert_candidate(state, _signal("casual", 0.0), "casual", 5.0, config)
        # weight clamped to 1.2, confidence floored at 0.05
        assert weighted == pytest.approx(1.2 * 0.05)

    def test_repeat_signals_accumulate(self, config):
        state = FieldState()
        upsert_candidate(state, _signal("casual", 0.3), "casual", 1.0, config)
        upsert_candidate(state, _signal("Casual", 0.2), "Casual", 1.0, config)
        assert list(state.candidates) == ["casual"]
        candidate = state.candidates["casual"]
        assert candidate.score == pytest.approx(0.5)
        assert candidate.support_count == 2

    def test_existing_score_decays_before_adding(self, config):
        state = FieldState()
        upsert_candidate(state, _signal("casual", 0.4, ts=T0), "casual", 1.0, config)
        upsert_candidate(state, _signal("casual", 0.1, ts=T0 + 180 * DAY_MS), "casual", 1.0, config)
        assert state.candidates["casual"].score == pytest.approx(0.4 * 0.5 + 0.1)
        assert state.candidates["casual"].last_seen_at == T0 + 180 * DAY_MS

    def test_late_signal_contribution_is_decayed(self, config):
        state = FieldState()
        upsert_candidate(state, _signal("casual", 0.4, ts=T0 + 180 * DAY_MS), "casual", 1.0, config)
        upsert_candidate(state, _signal("casual", 0.2, ts=T0), "casual", 1.0, config)
        candidate = state.candidates["casual"]
        assert candidate.score == pytest.approx(0.4 + 0.2 * 0.5)
        assert candidate.last_seen_at == T0 + 180 * DAY_MS
        assert candidate.first_seen_at == T0

    def test_evidence_is_bounded_newest_first(self, config):
        state = FieldState()
        for i in range(MAX_EVIDENCE_PER_CANDIDATE + 2):
            upsert_candidate(state, _signal("casual", 0.1, ts=T0 + i), "casual", 1.0, config)
        candidate = state.candidates["casual"]
        assert len(candidate.evidence) == MAX_EVIDENCE_PER_CANDIDATE
        assert candidate.evidence[0].timestamp_ms == T0 + MAX_EVIDENCE_PER_CANDIDATE + 1
        assert candidate.support_count == MAX_EVIDENCE_PER_CANDIDATE + 2


class TestSelection:
    def test_below_activation_selects_nothing(self, config):
        state = FieldState()
        outcome = apply_to_field(state, _signal("casual", 0.2), "casual", 1.0, config, T0)
        assert outcome.reason == "below_activation"
        assert outcome.changed is False
        assert state.selected_value == ""

    def test_first_selection_confidence(self, config):
        state = FieldState()
        outcome = apply_to_field(state, _signal("formal", 0.4), "formal", 1.0, config, T0)
        assert outcome.changed is True
        assert outcome.reason == "updated"
        assert state.selected_value == "formal"
        strength = 0.4 / (0.35 * 2.5)
        assert state.selected_confidence == pytest.approx(0.4 * (0.35 + 0.4 * strength) + 0.15)
        assert state.selected_source == "settings_sync"
        assert state.selected_updated_at == T0

    def test_hysteresis_blocks_small_margin_then_switches(self, config):
        state = FieldState()
        apply_to_field(state, _signal("formal", 0.40), "formal", 1.0, config, T0)

        held = apply_to_field(state, _signal("casual", 0.43), "casual", 1.0, config, T0)
        assert held.changed is False
        assert held.reason == "insufficient_margin"
        assert state.selected_value == "formal"
        assert held.top_score == pytest.approx(0.43)
        assert held.second_score == pytest.approx(0.40)

        switched = apply_to_field(state, _signal("casual", 0.07), "casual", 1.0, config, T0)
        assert switched.changed is True
        assert state.selected_value == "casual"

    def test_contradiction_counted_on_prior_selection(self, config):
        state = FieldState()
        apply_to_field(state, _signal("formal", 0.40), "formal", 1.0, config, T0)
        apply_to_field(state, _signal("casual", 0.43), "casual", 1.0, config, T0)
        # below min_margin: not a contradiction
        apply_to_field(state, _signal("casual", 0.05), "casual", 1.0, config, T0)
        assert state.candidates["formal"].contradiction_count == 1

    def test_current_selection_kept_without_margin(self, config):
        state = FieldState()
        apply_to_field(state, _signal("formal", 0.5), "formal", 1.0, config, T0)
        apply_to_field(state, _signal("casual", 0.45), "casual", 1.0, config, T0)
        outcome = apply_to_field(state, _signal("formal", 0.01), "formal", 1.0, config, T0)
        # formal is still on top by less than the margin but is the current value
        assert state.selected_value == "formal"
        assert outcome.reason in ("updated", "stable")

    def test_repeat_with_same_confidence_is_stable(self, config):
        state = FieldState()
        apply_to_field(state, _signal("formal", 1.0), "formal", 1.0, config, T0)
        apply_to_field(state, _signal("formal", 1.0), "formal", 1.0, config, T0)
        outcome = apply_to_field(state, _signal("formal", 1.0), "formal", 1.0, config, T0)
        assert outcome.reason == "stable"
        assert outcome.changed is False

    def test_stability_band_holds_current(self):
        cfg = FieldConfig(half_life_days=45, min_activation=0.34, min_margin=0.08, stability_band=0.15)
        state = FieldState()
        apply_to_field(state, _signal("reactive", 0.4), "reactive", 1.0, cfg, T0)
        # beats the current value by the margin but not by the band
        outcome = apply_to_field(state, _signal("proactive", 0.52), "proactive", 1.0, cfg, T0)
        assert outcome.reason == "within_stability_band"
        assert state.selected_value == "reactive"
        outcome = apply_to_field(state, _signal("proactive", 0.1), "proactive", 1.0, cfg, T0)
        assert state.selected_value == "proactive"

    def test_decay_lets_newer_value_win_eventually(self):
        cfg = FieldConfig(half_life_days=365, min_activation=0.28, min_margin=0.06)
        state = FieldState()
        apply_to_field(state, _signal("Alex", 0.95), "Alex", 1.0, cfg, T0)
        for years in (1, 2):
            ts = T0 + years * 365 * DAY_MS
            apply_to_field(state, _signal("Alexandra", 0.3, ts=ts, source="user_message_inference"),
                           "Alexandra", 0.56, cfg, ts)
        assert state.selected_value == "Alex"

        ts = T0 + 3 * 365 * DAY_MS
        outcome = apply_to_field(state, _signal("Alexandra", 0.3, ts=ts, source="user_message_inference"),
                                 "Alexandra", 0.56, cfg, ts)
        assert outcome.changed is True
        assert state.selected_value == "Alexandra"

    def test_candidate_cap_keeps_strongest(self):
        cfg = FieldConfig(max_candidates=3)
        state = FieldState()
        for i, value in enumerate(["a", "b", "c", "d", "e"]):
            apply_to_field(state, _signal(value, 0.1 * (i + 1)), value, 1.0, cfg, T0)
        assert set(state.candidates) == {"c", "d", "e"}

    def test_rank_ties_prefer_most_recent(self, config):
        state = FieldState()
        upsert_candidate(state, _signal("formal", 0.4, ts=T0), "formal", 1.0, config)
        upsert_candidate(state, _signal("casual", 0.4, ts=T0 + 1), "casual", 1.0, config)
        ranked = rank_candidates(state, config, T0 + 1)
        assert ranked[0].key == "casual"

    def test_deterministic(self, config):
        def run() -> dict:
            state = FieldState()
            for i, (value, conf) in enumerate([("formal", 0.4), ("casual", 0.6), ("formal", 0.3)]):
                apply_to_field(state, _signal(value, conf, ts=T0 + i * DAY_MS), value, 1.0, config, T0 + i * DAY_MS)
            return state.to_dict()

        assert run() == run()
