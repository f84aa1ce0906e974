"""Tests for the agent-facing profile tools."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from traitcore.identity.engine import IdentityEngine
from traitcore.identity.fields import FieldKey
from traitcore.identity.prompt import GUARDRAIL, HEADER
from traitcore.tools.profile_tools import get_profile_tools


@pytest.fixture
def engine(tmp_path: Path) -> IdentityEngine:
    return IdentityEngine(tmp_path)


class TestProfileTools:
    def test_tool_names(self, engine: IdentityEngine):
        assert set(get_profile_tools(engine, "bob")) == {
            "read_profile_summary",
            "inspect_profile",
            "record_tool_usage",
        }

    def test_summary_empty_then_filled(self, engine: IdentityEngine):
        tools = get_profile_tools(engine, "bob")
        assert tools["read_profile_summary"]() == f"{HEADER}\n{GUARDRAIL}"
        assert tools["read_profile_summary"](max_tokens=10) == "(no confident traits yet)"
        engine.ingest("bob", [{"fieldKey": FieldKey.PREFERRED_NAME.path, "value": "Bob", "confidence": 0.95,
                               "source": "settings_sync"}])
        assert "Preferred user name: Bob" in tools["read_profile_summary"]()

    def test_inspect_profile(self, engine: IdentityEngine):
        engine.ingest(
            "bob",
            [
                {"fieldKey": FieldKey.RESPONSE_TONE.path, "value": "calm", "confidence": 0.9, "source": "settings_sync"},
                {"fieldKey": FieldKey.RESPONSE_TONE.path, "value": "direct", "confidence": 0.2, "source": "settings_sync"},
            ],
        )
        payload = json.loads(get_profile_tools(engine, "bob")["inspect_profile"]("stableTraits.responseTone"))
        assert payload["selectedValue"] == "calm"
        assert [c["value"] for c in payload["candidates"]] == ["calm", "direct"]

    def test_inspect_unknown_field(self, engine: IdentityEngine):
        assert get_profile_tools(engine, "bob")["inspect_profile"]("nope").startswith("Unknown field")

    def test_record_tool_usage(self, engine: IdentityEngine):
        tools = get_profile_tools(engine, "bob")
        assert tools["record_tool_usage"]("web_search").startswith("Recorded web_search (uses=1")
        assert tools["record_tool_usage"]("  ") == "No valid tool name given"

    def test_scoped_to_user(self, engine: IdentityEngine):
        engine.ingest("alice", [{"fieldKey": FieldKey.PREFERRED_NAME.path, "value": "Alice", "confidence": 0.95,
                                 "source": "settings_sync"}])
        assert "Alice" not in get_profile_tools(engine, "bob")["read_profile_summary"]()

    def test_missing_user(self, engine: IdentityEngine):
        tools = get_profile_tools(engine, "")
        assert tools["record_tool_usage"]("web_search") == "Profile unavailable: missing_user_context"
