"""Security Classifier: pattern-based classification and redaction.

Classification is a pure function of the text; nothing is cached.

Level rules:
    - SSN or payment card numbers: RESTRICTED with ``pii_detected``
    - restricted markers (internal dashboards, salary data, ...): RESTRICTED
    - email or phone numbers: at least CONFIDENTIAL, tagged ``contact_info``
    - financial or legal wording: at least CONFIDENTIAL
    - other sensitive wording (hiring, passwords, ...): at least INTERNAL
    - everything else: PUBLIC
"""

import re
from collections.abc import Callable
from typing import Any

from cwf.domain.models.security import SecurityClassification, SecurityLevel

EMAIL_PLACEHOLDER = "[EMAIL_REDACTED]"
PHONE_PLACEHOLDER = "[PHONE_REDACTED]"
SSN_PLACEHOLDER = "[SSN_REDACTED]"
CARD_PLACEHOLDER = "[CARD_REDACTED]"

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_RE = re.compile(r"(?:\+1[-.\s]?)?(?:\(\d{3}\)\s?|\b\d{3}[-.]?)\d{3}[-.]?\d{4}\b")
SSN_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
# Nine bare digits only count as an SSN right after an SSN keyword
SSN_KEYWORD_RE = re.compile(
    r"\b(ssn|social security(?: number)?)(\W{0,3})\d{9}\b", re.IGNORECASE
)
CARD_RE = re.compile(r"\b(?:\d{4}[-.\s]?){3}\d{4}\b")

# High-risk identifiers: the text may not reach a prompt at all
_HIGH_RISK_PII = {
    "ssn": (SSN_RE, SSN_KEYWORD_RE),
    "credit_card": (CARD_RE,),
}

_CONTACT_PII = {
    "email": EMAIL_RE,
    "phone": PHONE_RE,
}

_SENSITIVE_PATTERNS = {
    "financial": re.compile(
        r"\b(revenue|profit|loss|budget|salary|earnings|margin)\b|\$\d[\d,]*", re.IGNORECASE
    ),
    "legal": re.compile(r"\b(lawsuit|litigation|legal|contract|agreement|nda)\b", re.IGNORECASE),
    "confidential": re.compile(
        r"\b(confidential|proprietary|secret|internal only|private)\b", re.IGNORECASE
    ),
    "personal": re.compile(r"\b(password|login|credential|api key|token)\b", re.IGNORECASE),
    "hr": re.compile(
        r"\b(hiring|firing|performance review|disciplinary)\b", re.IGNORECASE
    ),
}

# Categories that raise the level to CONFIDENTIAL on their own
_CONFIDENTIAL_CATEGORIES = frozenset({"financial", "legal"})

_RESTRICTED_MARKERS = re.compile(
    r"\b(restricted|do not distribute|internal dashboard|customer database|"
    r"compensation data|salary data|user data export)\b",
    re.IGNORECASE,
)


def classify(text: str) -> SecurityClassification:
    """Classify one piece of text."""
    level = SecurityLevel.PUBLIC
    pii_detected = False
    tags: list[str] = []

    for name, patterns in _HIGH_RISK_PII.items():
        if any(p.search(text) for p in patterns):
            pii_detected = True
            tags.append(f"pii_{name}")
            level = level.max(SecurityLevel.RESTRICTED)

    contact_found = False
    for name, pattern in _CONTACT_PII.items():
        if pattern.search(text):
            contact_found = True
            tags.append(f"pii_{name}")
    if contact_found:
        tags.append("contact_info")
        level = level.max(SecurityLevel.CONFIDENTIAL)

    for category, pattern in _SENSITIVE_PATTERNS.items():
        if pattern.search(text):
            tags.append(f"sensitive_{category}")
            level = level.max(SecurityLevel.INTERNAL)
            if category in _CONFIDENTIAL_CATEGORIES:
                level = level.max(SecurityLevel.CONFIDENTIAL)

    if _RESTRICTED_MARKERS.search(text):
        tags.append("restricted_marker")
        level = level.max(SecurityLevel.RESTRICTED)

    return SecurityClassification(level=level, pii_detected=pii_detected, tags=tuple(tags))


def redact(text: str) -> str:
    """Replace email, phone, SSN and card patterns with placeholders.

    Longer identifiers are replaced first so a card number is never
    partially rewritten as a phone number.
    """
    text = CARD_RE.sub(CARD_PLACEHOLDER, text)
    text = SSN_RE.sub(SSN_PLACEHOLDER, text)
    text = SSN_KEYWORD_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}{SSN_PLACEHOLDER}", text)
    text = EMAIL_RE.sub(EMAIL_PLACEHOLDER, text)
    text = PHONE_RE.sub(PHONE_PLACEHOLDER, text)
    return text


def redact_emails(text: str) -> str:
    return EMAIL_RE.sub(EMAIL_PLACEHOLDER, text)


def map_strings(value: Any, fn: Callable[[str], str]) -> Any:
    """Apply `fn` to every string inside nested dicts and lists."""
    if isinstance(value, str):
        return fn(value)
    if isinstance(value, dict):
        return {k: map_strings(v, fn) for k, v in value.items()}
    if isinstance(value, list):
        return [map_strings(v, fn) for v in value]
    return value
