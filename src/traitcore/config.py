"""Configuration loading from environment variables and traitcore.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_DATA_DIR = Path.home() / ".traitcore" / "users"
_CONFIG_FILENAME = "traitcore.toml"

HOUR_MS = 60 * 60 * 1000


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class IdentityConfig:
    """Identity trait engine settings."""

    prompt_max_tokens: int = 240
    intent_ttl_ms: int = 8 * HOUR_MS
    allow_sensitive_explicit: bool = False

    def __post_init__(self) -> None:
        self.prompt_max_tokens = max(120, int(self.prompt_max_tokens))
        self.intent_ttl_ms = max(HOUR_MS // 4, int(self.intent_ttl_ms))


@dataclass
class PersonalityConfig:
    """Personality dimension engine settings."""

    prompt_max_tokens: int = 160

    def __post_init__(self) -> None:
        self.prompt_max_tokens = max(80, int(self.prompt_max_tokens))


@dataclass
class TraitConfig:
    """Top-level traitcore configuration."""

    identity: IdentityConfig = field(default_factory=IdentityConfig)
    personality: PersonalityConfig = field(default_factory=PersonalityConfig)
    data_dir: Path = _DEFAULT_DATA_DIR
    serialize_user_writes: bool = False
    log_level: str = "INFO"


def load_config(config_path: Path | None = None) -> TraitConfig:
    """Load configuration from environment variables and optional traitcore.toml.

    Priority: environment variables > traitcore.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        for candidate in [
            Path.cwd() / _CONFIG_FILENAME,
            Path.home() / ".traitcore" / _CONFIG_FILENAME,
        ]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    identity_data = file_data.get("identity", {})
    personality_data = file_data.get("personality", {})

    return TraitConfig(
        identity=IdentityConfig(
            prompt_max_tokens=int(
                os.getenv(
                    "TRAITCORE_IDENTITY_PROMPT_MAX_TOKENS",
                    identity_data.get("prompt_max_tokens", 240),
                )
            ),
            intent_ttl_ms=int(
                os.getenv(
                    "TRAITCORE_IDENTITY_INTENT_TTL_MS",
                    identity_data.get("intent_ttl_ms", 8 * HOUR_MS),
                )
            ),
            allow_sensitive_explicit=_env_flag(
                "TRAITCORE_IDENTITY_ALLOW_SENSITIVE_EXPLICIT",
                bool(identity_data.get("allow_sensitive_explicit", False)),
            ),
        ),
        personality=PersonalityConfig(
            prompt_max_tokens=int(
                os.getenv(
                    "TRAITCORE_PERSONALITY_PROMPT_MAX_TOKENS",
                    personality_data.get("prompt_max_tokens", 160),
                )
            ),
        ),
        data_dir=Path(
            os.getenv("TRAITCORE_DATA_DIR", file_data.get("data_dir", str(_DEFAULT_DATA_DIR)))
        ).expanduser(),
        serialize_user_writes=_env_flag(
            "TRAITCORE_SERIALIZE_USER_WRITES",
            bool(file_data.get("serialize_user_writes", False)),
        ),
        log_level=os.getenv("TRAITCORE_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
