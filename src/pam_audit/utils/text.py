"""
Text normalization helpers shared by indexing, matching and classification.
"""

import re
import unicodedata

_NON_ALNUM = re.compile(r"[^a-z0-9 ]")
_SPACES = re.compile(r"\s+")
_TOKEN_MIN_LENGTH = 4


def normalize(text: str | None) -> str:
    """
    Normalize a description for comparison.

    Lower-cases, strips accents and punctuation and collapses whitespace, so
    that "Día Cama, Sala" and "dia cama sala" compare equal.
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _NON_ALNUM.sub(" ", stripped)
    return _SPACES.sub(" ", cleaned).strip()


def contains_any(text: str, keywords: tuple[str, ...] | list[str]) -> bool:
    """Check whether a normalized text contains any of the keywords."""
    return any(keyword in text for keyword in keywords)


def contains_word(text: str, keywords: tuple[str, ...] | list[str]) -> bool:
    """
    Check whether a normalized text contains any keyword as whole words.

    A keyword may carry a plural ending ("curaciones" matches "curacion"),
    but it never matches inside a longer word ("salazar" does not match "sala").
    """
    return any(re.search(rf"\b{re.escape(keyword)}(?:e?s)?\b", text) for keyword in keywords)


def tokens(text: str | None) -> set[str]:
    """Significant tokens of a description (normalized, 4+ characters)."""
    return {tok for tok in normalize(text).split() if len(tok) >= _TOKEN_MIN_LENGTH}
