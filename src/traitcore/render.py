"""Token-budgeted assembly of prompt sections."""

from __future__ import annotations

import math
from collections.abc import Iterable

CHARS_PER_TOKEN = 3.5
MAX_SECTION_TOKENS = 800


def estimate_tokens(text: str) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def fit_lines(
    header: str, lines: Iterable[str], footer: str, max_tokens: int, *, keep_empty: bool = False
) -> str:
    """Greedily keep ``lines`` in order while header + kept + footer fits.

    Stops at the first line that would overflow. Returns "" when header and
    footer alone exceed the budget, or when no line is kept and
    ``keep_empty`` is false. The footer is always last.
    """
    budget = min(int(max_tokens), MAX_SECTION_TOKENS)
    frame = "\n".join(part for part in [header, footer] if part)
    if estimate_tokens(frame) > budget:
        return ""
    body = [line.strip() for line in lines if line and line.strip()]
    kept: list[str] = []
    for line in body:
        candidate = "\n".join(part for part in [header, *kept, line, footer] if part)
        if estimate_tokens(candidate) > budget:
            break
        kept.append(line)
    if not kept and not keep_empty:
        return ""
    return "\n".join(part for part in [header, *kept, footer] if part)
