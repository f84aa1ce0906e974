"""Sensitive-category classification and the deny-by-default capture policy.

A value is classified by the first matching classifier in a fixed order.
The policy then decides, per (source, field, class), whether the value may
be stored. Unknown or newly added classes fall through to the final deny,
so no per-field code has to change to protect them.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from traitcore.scoring import normalize_candidate_key, normalize_whitespace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SensitiveClassifier:
    class_id: str
    patterns: tuple[re.Pattern[str], ...]

    def matches(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.patterns)


def _classifier(class_id: str, *patterns: str, flags: int = re.IGNORECASE) -> SensitiveClassifier:
    return SensitiveClassifier(class_id, tuple(re.compile(p, flags) for p in patterns))


SENSITIVE_CLASSIFIERS: tuple[SensitiveClassifier, ...] = (
    _classifier(
        "credential_secret",
        r"\b(api[_ -]?key|secret(?: key)?|private key|password|passphrase|auth token|bearer token)\b",
        r"\bsk-[a-z0-9]{12,}\b",
    ),
    _classifier(
        "account_secret",
        r"\b(account number|routing number|iban|swift|credit card|debit card|cvv|cvc|security code)\b",
        r"\b\d{13,19}\b",
    ),
    _classifier(
        "government_id",
        r"\b(ssn|social security|passport number|driver'?s license|tax id)\b",
        r"\b\d{3}-\d{2}-\d{4}\b",
    ),
    _classifier(
        "health_condition",
        r"\b(diabetes|diabetic|cancer|hiv|aids|bipolar|depression|anxiety disorder|autism)\b",
    ),
    _classifier(
        "religion_belief",
        r"\b(christian|muslim|jewish|hindu|buddhist|sikh|atheist)\b",
    ),
    _classifier(
        "sexual_orientation_or_gender",
        r"\b(gay|lesbian|bisexual|transgender|queer|straight|non-binary)\b",
    ),
    _classifier(
        "political_affiliation",
        r"\b(republican|democrat|conservative|liberal|socialist|communist)\b",
    ),
    _classifier(
        "race_ethnicity",
        r"\b(black|white|asian|latino|hispanic|arab|native american)\b",
    ),
)

ALWAYS_DENIED_CLASSES = frozenset({"credential_secret", "account_secret", "government_id"})
INFERRED_SOURCES = frozenset(
    {"user_message_inference", "transcript_observation", "nlp_correction_signal", "unknown"}
)
EXPLICIT_SOURCES = frozenset({"explicit_user_preference", "memory_update", "settings_sync"})


def classify(value: str, classifiers: Iterable[SensitiveClassifier] = SENSITIVE_CLASSIFIERS) -> str:
    """Return the first matching sensitive class id, or "" for none."""
    text = normalize_whitespace(value)
    if not text:
        return ""
    for classifier in classifiers:
        if classifier.matches(text):
            return classifier.class_id
    return ""


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str = ""


ALLOW = PolicyDecision(True)


@dataclass
class SensitivePolicy:
    """Capture policy cascade for sensitive values.

    Evaluated in order: always-denied class, per-field allow-list, inferred
    source, explicit source with the global allowance, default deny.
    """

    allow_explicit: bool = False
    always_denied: frozenset[str] = ALWAYS_DENIED_CLASSES
    inferred_sources: frozenset[str] = INFERRED_SOURCES
    explicit_sources: frozenset[str] = EXPLICIT_SOURCES
    allowed_classes_by_field: Mapping[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: object) -> SensitivePolicy:
        return cls(allow_explicit=bool(getattr(settings, "allow_sensitive_explicit", False)))

    def resolve(self, source: str, field_key: str, class_id: str) -> PolicyDecision:
        source = normalize_candidate_key(source or "unknown") or "unknown"
        class_id = normalize_candidate_key(class_id)
        if not class_id:
            return ALLOW

        if class_id in self.always_denied:
            return PolicyDecision(False, f"sensitive_class_always_denied:{class_id}")

        if class_id in self.allowed_classes_by_field.get(field_key, frozenset()):
            return ALLOW

        if source in self.inferred_sources:
            return PolicyDecision(False, f"sensitive_inference_denied:{class_id}")

        if self.allow_explicit and source in self.explicit_sources:
            return ALLOW

        return PolicyDecision(False, f"sensitive_default_deny:{class_id}")

    def check(self, source: str, field_key: str, value: str) -> PolicyDecision:
        """Classify ``value`` and resolve the policy for it."""
        class_id = classify(value)
        if not class_id:
            return ALLOW
        decision = self.resolve(source, field_key, class_id)
        if not decision.allowed:
            logger.debug("Sensitive value denied for %s from %s: %s", field_key, source, decision.reason)
        return decision
