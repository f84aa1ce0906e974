"""Per-user JSON documents with corrupt-file quarantine.

Layout (one directory per normalized user id):
    <data_dir>/<user_id>/
    ├── profile/
    │   ├── identity-intelligence.json     # Identity snapshot
    │   ├── identity-seed.md               # Optional settings seed (front matter)
    │   └── personality-profile.json       # Personality dimensions
    └── logs/
        ├── identity-intelligence.jsonl    # Append-only audit trail
        └── personality-profile.jsonl

Documents are overwritten synchronously on every mutation. A document that
fails to parse, is not an object, or carries an unknown ``schemaVersion``
is renamed to ``<name>.corrupt.<now_ms>`` and treated as absent.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

MAX_USER_ID_CHARS = 96


def normalize_user_id(value: Any) -> str:
    """Lowercase, map anything outside ``[a-z0-9_-]`` to ``-``, trim dashes."""
    text = str(value or "").strip().lower()
    text = re.sub(r"[^a-z0-9_-]", "-", text)
    text = re.sub(r"-+", "-", text).strip("-")
    return text[:MAX_USER_ID_CHARS]


@dataclass(frozen=True)
class ProfilePaths:
    """Filesystem locations for one user's profile documents."""

    user_id: str
    user_dir: Path

    @property
    def profile_dir(self) -> Path:
        return self.user_dir / "profile"

    @property
    def logs_dir(self) -> Path:
        return self.user_dir / "logs"

    def document(self, name: str) -> Path:
        return self.profile_dir / name

    def audit(self, name: str) -> Path:
        return self.logs_dir / name


def resolve_paths(data_dir: Path, user_id: Any) -> ProfilePaths | None:
    """Return the user's paths, or None when the id normalizes to nothing."""
    normalized = normalize_user_id(user_id)
    if not normalized:
        return None
    return ProfilePaths(user_id=normalized, user_dir=Path(data_dir) / normalized)


@dataclass
class LoadedDocument:
    payload: dict[str, Any] | None
    created_fresh: bool
    recovered_corrupt_path: str = ""


class DocumentStore:
    """Read/write one versioned JSON document."""

    def __init__(self, path: Path, schema_version: int) -> None:
        self.path = path
        self.schema_version = schema_version

    def _is_known_version(self, payload: dict[str, Any]) -> bool:
        version = payload.get("schemaVersion")
        if isinstance(version, bool) or not isinstance(version, int):
            return False
        return 1 <= version <= self.schema_version

    def read(self, now_ms: int) -> LoadedDocument:
        """Load the document, quarantining it if unreadable. Never raises."""
        if not self.path.exists():
            return LoadedDocument(payload=None, created_fresh=True)

        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Unreadable document %s: %s", self.path, e)
            payload = None

        if isinstance(payload, dict) and self._is_known_version(payload):
            return LoadedDocument(payload=payload, created_fresh=False)

        archived = self.archive_corrupt(now_ms)
        return LoadedDocument(payload=None, created_fresh=True, recovered_corrupt_path=archived)

    def archive_corrupt(self, now_ms: int) -> str:
        """Rename the current file to a ``.corrupt.<now_ms>`` sibling."""
        if not self.path.exists():
            return ""
        target = self.path.with_name(f"{self.path.name}.corrupt.{now_ms}")
        try:
            self.path.rename(target)
        except OSError as e:
            logger.error("Failed to quarantine %s: %s", self.path, e)
            return ""
        logger.warning("Quarantined corrupt document %s -> %s", self.path, target.name)
        return str(target)

    def write(self, payload: dict[str, Any]) -> bool:
        """Overwrite the document. Failures are logged and reported, not raised."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to write document %s: %s", self.path, e)
            return False
        return True
