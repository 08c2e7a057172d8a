"""Unified text normalization for title/artist matching.

All code that compares track titles or artist names should go through
normalize_for_matching() so that the scorer and the merge engine agree on
what "the same value" means.
"""

from __future__ import annotations

import re
import unicodedata

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_ARTIST_SEPARATOR_RE = re.compile(
    r"\s*(?:,|&|\+|/|;|\bfeat\.?|\bft\.?|\bfeaturing\b|\band\b|\bvs\.?|\bx\b)\s*",
    re.IGNORECASE,
)


def fold_diacritics(text: str) -> str:
    """Strip combining marks so that "Beyoncé" and "Beyonce" compare equal."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def normalize_for_matching(text: str | None) -> str:
    """Normalize text for case- and accent-insensitive matching.

    Args:
        text: Text to normalize (track title, artist name, etc.)

    Returns:
        Normalized text: casefolded, diacritics removed, "&" spelled out,
        punctuation dropped and whitespace collapsed

    Examples:
        >>> normalize_for_matching("  Strobe (Original Mix) ")
        'strobe original mix'
        >>> normalize_for_matching("Café Del Mar")
        'cafe del mar'
        >>> normalize_for_matching("Above & Beyond")
        'above and beyond'
    """
    if not text:
        return ""
    folded = fold_diacritics(text).casefold().replace("&", " and ")
    without_punctuation = _PUNCTUATION_RE.sub(" ", folded)
    return _WHITESPACE_RE.sub(" ", without_punctuation).strip()


def split_artists(text: str | None) -> list[str]:
    """Split a multi-artist credit into normalized, sorted individual names.

    Args:
        text: Artist credit such as "Kaskade feat. deadmau5" or "A, B & C"

    Returns:
        Sorted list of normalized artist names, empty names removed

    """
    if not text:
        return []
    parts = _ARTIST_SEPARATOR_RE.split(fold_diacritics(text))
    names = {normalize_for_matching(part) for part in parts}
    names.discard("")
    return sorted(names)

