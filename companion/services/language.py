"""
Language helpers for the correction flow.

- has_signal: whether a draft carries enough text to be worth detecting
- resolve_language: auto-detected vs. manual language precedence
- heuristic_detect: offline keyword scorer backing the mock detector
"""

import re
from typing import Optional

from companion.mock_data import LANGUAGE_KEYWORDS
from companion.models import SUPPORTED_LANGUAGES, UNKNOWN_LANGUAGE

MIN_SIGNAL_CHARS = 15
MIN_SIGNAL_TOKENS = 3

_WORD_RE = re.compile(r"[\w']+")


def has_signal(text: str) -> bool:
    """Trimmed text is at least 15 characters and 3 whitespace-separated tokens."""
    trimmed = (text or "").strip()
    return len(trimmed) >= MIN_SIGNAL_CHARS and len(trimmed.split()) >= MIN_SIGNAL_TOKENS


def is_known_language(language: Optional[str]) -> bool:
    return language in SUPPORTED_LANGUAGES


def normalize_language(value: Optional[str]) -> str:
    """Map a free-form label onto a supported language or 'unknown'."""
    label = (value or "").strip().lower()
    return label if label in SUPPORTED_LANGUAGES else UNKNOWN_LANGUAGE


def resolve_language(
    auto_detect_enabled: bool, last_detected: Optional[str], manual_selection: str
) -> str:
    """Return the language a correction request should use.

    The detected language wins only while auto-detect is on and the last
    detection produced a known language. Pure: safe to call on every tick.
    """
    if auto_detect_enabled and is_known_language(last_detected):
        return last_detected
    return manual_selection


def heuristic_detect(text: str) -> str:
    """Score each language by whole-word keyword hits; best score wins."""
    words = _WORD_RE.findall((text or "").lower())
    best_language = UNKNOWN_LANGUAGE
    best_score = 0
    for language in SUPPORTED_LANGUAGES:
        keywords = LANGUAGE_KEYWORDS.get(language, set())
        score = sum(1 for word in words if word in keywords)
        if score > best_score:
            best_language, best_score = language, score
    return best_language
