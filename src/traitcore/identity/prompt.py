"""Bounded textual summary of an identity snapshot."""

from __future__ import annotations

from datetime import datetime, timezone

from traitcore.identity.affinity import top_tools
from traitcore.identity.fields import DISPLAY, FieldKey
from traitcore.identity.models import IdentitySnapshot
from traitcore.render import fit_lines
from traitcore.scoring import FieldState, clamp

HEADER = "Identity intelligence layer (user-scoped, auditable, confidence-gated):"
GUARDRAIL = (
    "- Guardrails: ignore low-confidence traits; never infer sensitive attributes; "
    "never mix data across user contexts."
)


def _iso(ts_ms: int) -> str:
    if ts_ms <= 0:
        return "unknown"
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).isoformat(timespec="seconds")


def render_field(label: str, state: FieldState, min_confidence: float) -> str:
    value = state.selected_value.strip()
    confidence = clamp(state.selected_confidence)
    if not value or confidence < min_confidence:
        return ""
    source = state.selected_source or "unknown"
    return (
        f"- {label}: {value} (confidence={confidence:.2f}, source={source}, "
        f"updated={_iso(state.selected_updated_at)})"
    )


def render_tool_affinity(snapshot: IdentitySnapshot) -> str:
    entries = top_tools(snapshot.tool_affinity)
    if not entries:
        return ""
    return "- Tool affinity: " + ", ".join(f"{name}({state.confidence:.2f})" for name, state in entries)


def render_summary(snapshot: IdentitySnapshot | None, now_ms: int, max_tokens: int) -> str:
    """Render displayable traits in priority order within ``max_tokens``.

    Session intent only appears while unexpired. Header and guardrail are
    emitted even when no trait qualifies, unless they alone exceed the budget.
    """
    if snapshot is None or not snapshot.user_id:
        return ""
    lines: list[str] = []
    for key, (label, threshold) in DISPLAY.items():
        if key is FieldKey.CURRENT_INTENT and not snapshot.intent_is_fresh(now_ms):
            continue
        lines.append(render_field(label, snapshot.field_state(key), threshold))
    lines.append(render_tool_affinity(snapshot))
    return fit_lines(HEADER, lines, GUARDRAIL, max_tokens, keep_empty=True)
