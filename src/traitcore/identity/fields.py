"""Closed registry of identity fields and signal sources."""

from __future__ import annotations

from enum import Enum

from traitcore.scoring import FieldConfig


class FieldGroup(str, Enum):
    STABLE_TRAITS = "stableTraits"
    DYNAMIC_PREFERENCES = "dynamicPreferences"
    TEMPORAL_SESSION_INTENT = "temporalSessionIntent"


class FieldKind(str, Enum):
    NAME = "name"
    ENUM = "enum"
    FREE_TEXT = "free_text"
    LANGUAGE = "language"
    SLUG = "slug"


class FieldKey(Enum):
    """Every identity field, as a ``(group, field)`` pair."""

    PREFERRED_NAME = (FieldGroup.STABLE_TRAITS, "preferredName")
    PREFERRED_LANGUAGE = (FieldGroup.STABLE_TRAITS, "preferredLanguage")
    COMMUNICATION_STYLE = (FieldGroup.STABLE_TRAITS, "communicationStyle")
    RESPONSE_TONE = (FieldGroup.STABLE_TRAITS, "responseTone")
    ASSISTANT_NAME = (FieldGroup.STABLE_TRAITS, "assistantName")
    OCCUPATION_CONTEXT = (FieldGroup.STABLE_TRAITS, "occupationContext")
    RESPONSE_VERBOSITY = (FieldGroup.DYNAMIC_PREFERENCES, "responseVerbosity")
    EXPLANATION_DEPTH = (FieldGroup.DYNAMIC_PREFERENCES, "explanationDepth")
    CITATION_PREFERENCE = (FieldGroup.DYNAMIC_PREFERENCES, "citationPreference")
    SKILL_FOCUS = (FieldGroup.DYNAMIC_PREFERENCES, "skillFocus")
    CURRENT_INTENT = (FieldGroup.TEMPORAL_SESSION_INTENT, "currentIntent")

    @property
    def group(self) -> FieldGroup:
        return self.value[0]

    @property
    def field(self) -> str:
        return self.value[1]

    @property
    def path(self) -> str:
        return f"{self.group.value}.{self.field}"

    @classmethod
    def parse(cls, raw: str) -> FieldKey | None:
        """Resolve a ``"group.field"`` string; None if it is not registered."""
        return _BY_PATH.get(str(raw or "").strip())

    def __str__(self) -> str:
        return self.path


_BY_PATH = {key.path: key for key in FieldKey}

FIELDS_BY_GROUP: dict[FieldGroup, tuple[FieldKey, ...]] = {
    group: tuple(key for key in FieldKey if key.group is group) for group in FieldGroup
}

INTENT_VALUES = ("coding", "research", "planning", "operations", "finance", "personal", "general")

FIELD_CONFIG: dict[FieldKey, FieldConfig] = {
    FieldKey.PREFERRED_NAME: FieldConfig(365, 0.28, 0.06, 48),
    FieldKey.PREFERRED_LANGUAGE: FieldConfig(240, 0.32, 0.08, 48),
    FieldKey.COMMUNICATION_STYLE: FieldConfig(
        180, 0.35, 0.08, 40, ("formal", "casual", "friendly", "professional", "direct")
    ),
    FieldKey.RESPONSE_TONE: FieldConfig(
        180, 0.35, 0.08, 32, ("neutral", "enthusiastic", "calm", "direct", "relaxed")
    ),
    FieldKey.ASSISTANT_NAME: FieldConfig(240, 0.34, 0.07, 40),
    FieldKey.OCCUPATION_CONTEXT: FieldConfig(180, 0.35, 0.10, 80),
    FieldKey.RESPONSE_VERBOSITY: FieldConfig(45, 0.36, 0.08, 24, ("concise", "balanced", "detailed")),
    FieldKey.EXPLANATION_DEPTH: FieldConfig(60, 0.36, 0.08, 24, ("shallow", "standard", "deep")),
    FieldKey.CITATION_PREFERENCE: FieldConfig(60, 0.36, 0.09, 32, ("none", "on_request", "always")),
    FieldKey.SKILL_FOCUS: FieldConfig(35, 0.37, 0.10, 48),
    FieldKey.CURRENT_INTENT: FieldConfig(7, 0.40, 0.12, 48, INTENT_VALUES),
}

FIELD_KIND: dict[FieldKey, FieldKind] = {
    FieldKey.PREFERRED_NAME: FieldKind.NAME,
    FieldKey.ASSISTANT_NAME: FieldKind.NAME,
    FieldKey.PREFERRED_LANGUAGE: FieldKind.LANGUAGE,
    FieldKey.OCCUPATION_CONTEXT: FieldKind.FREE_TEXT,
    FieldKey.SKILL_FOCUS: FieldKind.SLUG,
}

# (label, display threshold), in summary priority order.
DISPLAY: dict[FieldKey, tuple[str, float]] = {
    FieldKey.PREFERRED_NAME: ("Preferred user name", 0.58),
    FieldKey.PREFERRED_LANGUAGE: ("Preferred language", 0.56),
    FieldKey.COMMUNICATION_STYLE: ("Communication style", 0.58),
    FieldKey.RESPONSE_TONE: ("Response tone", 0.58),
    FieldKey.ASSISTANT_NAME: ("Assistant display name", 0.56),
    FieldKey.OCCUPATION_CONTEXT: ("Occupation context", 0.60),
    FieldKey.RESPONSE_VERBOSITY: ("Verbosity preference", 0.62),
    FieldKey.EXPLANATION_DEPTH: ("Explanation depth", 0.62),
    FieldKey.CITATION_PREFERENCE: ("Citation preference", 0.62),
    FieldKey.SKILL_FOCUS: ("Current skill focus", 0.62),
    FieldKey.CURRENT_INTENT: ("Current session intent", 0.60),
}


def field_kind(key: FieldKey) -> FieldKind:
    if FIELD_CONFIG[key].allowed_values:
        return FieldKind.ENUM
    return FIELD_KIND.get(key, FieldKind.FREE_TEXT)


SOURCE_WEIGHTS: dict[str, float] = {
    "settings_sync": 1.0,
    "explicit_user_preference": 1.08,
    "memory_update": 0.9,
    "skill_preference_update": 0.88,
    "user_message_inference": 0.56,
    "nlp_correction_signal": 0.4,
    "tool_usage_observation": 0.45,
    "transcript_observation": 0.52,
    "unknown": 0.45,
}


def normalize_source(source: str) -> str:
    """Unregistered sources collapse to ``unknown`` (lowest trust, inferred bucket)."""
    source = str(source or "").strip().lower()
    return source if source in SOURCE_WEIGHTS else "unknown"


def source_weight(source: str) -> float:
    return SOURCE_WEIGHTS[normalize_source(source)]
