"""Per-field value validation and prompt-injection rejection.

``sanitize`` returns the cleaned value, or "" when the value must be
rejected. It never returns a partially valid value.
"""

from __future__ import annotations

import re

from traitcore.identity.fields import FIELD_CONFIG, FieldKey, FieldKind, field_kind
from traitcore.scoring import normalize_whitespace

PROMPT_POISONING_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"ignore\s+(all\s+)?previous\s+instructions",
        r"ignore\s+the\s+system\s+prompt",
        r"you\s+are\s+now\s+",
        r"\bdeveloper\s+mode\b",
        r"reveal\s+the\s+system\s+prompt",
        r"do\s+anything\s+now",
        r"^\s*(system|assistant|developer)\s*:",
        r"```",
    )
)

_NAME_RE = re.compile(r"^[a-z][a-z0-9' -]*$", re.IGNORECASE)
_ASSISTANT_NAME_MAX = 40


def is_prompt_poisoning(value: str) -> bool:
    return any(pattern.search(value) for pattern in PROMPT_POISONING_PATTERNS)


def _sanitize_name(value: str, max_chars: int) -> str:
    cleaned = normalize_whitespace(value.strip("\"'"))
    cleaned = re.sub(r"[.?!,:;]+$", "", cleaned)[:max_chars].strip()
    if not cleaned or not _NAME_RE.match(cleaned):
        return ""
    return cleaned


def _slugify(value: str, max_chars: int) -> str:
    slug = re.sub(r"[^a-z0-9 _-]", "", value.lower())
    slug = re.sub(r"[_\s]+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:max_chars].strip("-")


def sanitize(field_key: FieldKey, raw: object) -> str:
    """Clean ``raw`` for ``field_key`` or return "" to reject it."""
    config = FIELD_CONFIG[field_key]
    text = normalize_whitespace(raw)
    if not text or is_prompt_poisoning(text):
        return ""
    value = text[: config.max_chars].strip()

    kind = field_kind(field_key)
    if kind is FieldKind.ENUM:
        lowered = value.lower()
        return lowered if lowered in config.allowed_values else ""
    if kind is FieldKind.NAME:
        limit = config.max_chars
        if field_key is FieldKey.ASSISTANT_NAME:
            limit = min(_ASSISTANT_NAME_MAX, limit)
        return _sanitize_name(value, limit)
    if kind is FieldKind.LANGUAGE:
        return normalize_whitespace(re.sub(r"[^a-z -]", "", value, flags=re.IGNORECASE))
    if kind is FieldKind.SLUG:
        return _slugify(value, config.max_chars)
    return "".join(ch for ch in value if ch.isprintable()).strip()
