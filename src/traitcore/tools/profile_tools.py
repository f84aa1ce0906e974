"""Agent-facing tools for profile access.

These functions are designed to be exposed as tools to the AI agent,
scoped to one user so a tool can never read another user's profile.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from traitcore.identity.engine import IdentityEngine


def get_profile_tools(engine: IdentityEngine, user_id: str) -> dict[str, callable]:
    """Return a dict of tool_name -> callable bound to ``user_id``.

    These can be registered as MCP tools or called directly.
    """

    def read_profile_summary(max_tokens: int | None = None) -> str:
        """Read the confidence-gated identity summary for this user."""
        summary = engine.summary(user_id, max_tokens=max_tokens)
        return summary or "(no confident traits yet)"

    def inspect_profile(field_key: str) -> str:
        """Show the selected value and ranked candidates for one field."""
        from traitcore.identity.engine import now_ms
        from traitcore.identity.fields import FIELD_CONFIG, FieldKey
        from traitcore.scoring import rank_candidates

        key = FieldKey.parse(field_key)
        if key is None:
            return f"Unknown field: {field_key}"
        loaded = engine.load(user_id)
        if loaded.disabled_reason:
            return f"Profile unavailable: {loaded.disabled_reason}"
        state = loaded.snapshot.field_state(key)
        ranked = rank_candidates(state, FIELD_CONFIG[key], now_ms())
        payload = {
            "fieldKey": key.path,
            "selectedValue": state.selected_value,
            "selectedConfidence": round(state.selected_confidence, 4),
            "candidates": [
                {"value": entry.candidate.value, "score": round(entry.score, 4), "support": entry.candidate.support_count}
                for entry in ranked
            ],
        }
        return json.dumps(payload, ensure_ascii=False, indent=2)

    def record_tool_usage(tool_name: str) -> str:
        """Record that a tool was used by this user."""
        result = engine.record_tool_usage(user_id, [tool_name])
        if result.disabled_reason:
            return f"Profile unavailable: {result.disabled_reason}"
        if not result.tool_updates:
            return "No valid tool name given"
        update = result.tool_updates[0]
        return f"Recorded {update.tool_name} (uses={update.count}, confidence={update.confidence:.2f})"

    return {
        "read_profile_summary": read_profile_summary,
        "inspect_profile": inspect_profile,
        "record_tool_usage": record_tool_usage,
    }
