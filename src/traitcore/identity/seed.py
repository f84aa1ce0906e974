"""Settings seed: a user-editable markdown file whose front matter mirrors
the settings form (assistant name, user name, language, style, tone).

Example ``profile/identity-seed.md``::

    ---
    schema_version: 1
    user_name: Alex
    assistant_name: Nova
    tone: calm
    ---
    Notes below the front matter are ignored.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import frontmatter

from traitcore.identity.fields import FieldKey
from traitcore.scoring import Signal, normalize_whitespace

logger = logging.getLogger(__name__)

SEED_FILE_NAME = "identity-seed.md"

# front matter key -> (field, confidence, reason)
SEED_FIELDS: dict[str, tuple[FieldKey, float, str]] = {
    "assistant_name": (FieldKey.ASSISTANT_NAME, 0.98, "seed_assistant_name"),
    "user_name": (FieldKey.PREFERRED_NAME, 0.94, "seed_user_name"),
    "occupation": (FieldKey.OCCUPATION_CONTEXT, 0.82, "seed_occupation"),
    "preferred_language": (FieldKey.PREFERRED_LANGUAGE, 0.86, "seed_language"),
    "communication_style": (FieldKey.COMMUNICATION_STYLE, 0.87, "seed_communication_style"),
    "tone": (FieldKey.RESPONSE_TONE, 0.87, "seed_tone"),
}


def load_seed(path: Path) -> dict[str, Any] | None:
    """Parse the seed's front matter. None if missing, unparseable or unversioned."""
    if not path.exists():
        return None
    try:
        post = frontmatter.load(str(path))
    except Exception as e:
        logger.warning("Ignoring unparseable settings seed %s: %s", path, e)
        return None
    meta = dict(post.metadata)
    version = meta.get("schema_version")
    if isinstance(version, bool) or not isinstance(version, int) or version <= 0:
        return None
    return meta


def signals_from_seed(meta: dict[str, Any], now_ms: int) -> list[Signal]:
    signals = []
    for name, (key, confidence, reason) in SEED_FIELDS.items():
        value = normalize_whitespace(meta.get(name))
        if not value:
            continue
        signals.append(
            Signal(
                field_key=key.path,
                value=value,
                confidence=confidence,
                source="settings_sync",
                reason=reason,
                timestamp_ms=now_ms,
            )
        )
    return signals
