"""Personality dimensions: ordered value scales with per-dimension decay."""

from __future__ import annotations

from dataclasses import dataclass

from traitcore.scoring import FieldConfig, normalize_candidate_key

MAX_CANDIDATES_PER_DIMENSION = 8
MAX_VALUE_CHARS = 24


@dataclass(frozen=True)
class Dimension:
    key: str
    label: str
    values: tuple[str, ...]  # low -> high
    config: FieldConfig

    def index(self, value: str) -> int:
        """Position of ``value`` on the scale, -1 if it is not on it."""
        try:
            return self.values.index(value)
        except ValueError:
            return -1

    def sanitize(self, raw: object) -> str:
        value = normalize_candidate_key(raw)[:MAX_VALUE_CHARS]
        return value if value in self.values else ""


def _dimension(
    key: str,
    label: str,
    values: tuple[str, ...],
    half_life_days: float,
    min_activation: float,
    min_margin: float,
    stability_band: float,
) -> Dimension:
    config = FieldConfig(
        half_life_days=half_life_days,
        min_activation=min_activation,
        min_margin=min_margin,
        max_chars=MAX_VALUE_CHARS,
        allowed_values=values,
        stability_band=stability_band,
        max_candidates=MAX_CANDIDATES_PER_DIMENSION,
    )
    return Dimension(key, label, values, config)


DIMENSIONS: dict[str, Dimension] = {
    d.key: d
    for d in (
        _dimension("proactivity", "Proactivity", ("reactive", "balanced", "proactive"), 45, 0.34, 0.08, 0.15),
        _dimension("humor_level", "Humor", ("none", "subtle", "playful"), 60, 0.33, 0.09, 0.12),
        _dimension(
            "risk_tolerance", "Risk tolerance", ("conservative", "balanced", "bold"), 90, 0.38, 0.10, 0.18
        ),
        _dimension(
            "structure_preference",
            "Response structure",
            ("freeform", "mixed", "structured"),
            45,
            0.35,
            0.08,
            0.10,
        ),
        _dimension(
            "challenge_level", "Challenge mode", ("supportive", "neutral", "challenger"), 60, 0.35, 0.10, 0.14
        ),
    )
}

SOURCE_WEIGHTS: dict[str, float] = {
    "explicit_correction": 1.2,
    "settings_sync": 1.0,
    "memory_update": 0.9,
    "user_message_inference": 0.55,
    "transcript_observation": 0.5,
    "unknown": 0.45,
}


def normalize_source(source: str) -> str:
    source = str(source or "").strip().lower()
    return source if source in SOURCE_WEIGHTS else "unknown"


def source_weight(source: str) -> float:
    return SOURCE_WEIGHTS[normalize_source(source)]


DIMENSION_INSTRUCTIONS: dict[str, dict[str, str]] = {
    "proactivity": {
        "reactive": "Only answer what was directly asked. Do not offer unsolicited suggestions.",
        "balanced": "Occasionally surface relevant next steps when clearly helpful.",
        "proactive": "Actively surface next steps, spot issues, and suggest improvements unprompted.",
    },
    "humor_level": {
        "none": "Keep responses strictly professional. No humor or levity.",
        "subtle": "Light wit is welcome when it fits naturally. Stay tasteful.",
        "playful": "Humor and banter are welcome. Match the user's energy.",
    },
    "risk_tolerance": {
        "conservative": "Frame advice conservatively. Highlight risks and prefer safe defaults.",
        "balanced": "Balance opportunity and risk in recommendations.",
        "bold": "User tolerates risk. Favor ambitious options and decisive recommendations.",
    },
    "structure_preference": {
        "freeform": "Prefer flowing prose. Avoid over-structuring with bullets or headers.",
        "mixed": "Mix prose and structure as the content warrants.",
        "structured": "Use clear structure: bullets, headers, numbered lists as appropriate.",
    },
    "challenge_level": {
        "supportive": "Validate the user's approach. Be encouraging and affirming.",
        "neutral": "Give balanced perspective without strong push-back.",
        "challenger": "Respectfully challenge assumptions, push back on weak approaches, offer alternatives.",
    },
}
