"""Normalized string similarity used by remote presence resolution."""

import re

from rapidfuzz.distance import Levenshtein

_BRACKETED = re.compile(r"\s*[\(\[\{][^\)\]\}]*[\)\]\}]\s*")
_WHITESPACE = re.compile(r"\s+")


def similarity(a: str | None, b: str | None) -> float:
    """Levenshtein similarity normalized by the longer string.

    Case-insensitive: both sides are lowercased first. The score is
    ``1 - distance / max(len(a), len(b))``, so it is symmetric and
    ``similarity(x, x) == 1.0``. Two empty strings are identical (1.0).

    Args:
        a: First string (None is treated as empty)
        b: Second string (None is treated as empty)

    Returns:
        Score in [0.0, 1.0]
    """
    left = (a or "").lower()
    right = (b or "").lower()
    if not left and not right:
        return 1.0
    return Levenshtein.normalized_similarity(left, right)


def album_after_dash(album: str) -> str:
    """Album name with everything up to the first "-" dropped.

    "Artist - Album" style tags are common locally but the remote only knows "Album".
    An album without a dash is returned trimmed but otherwise unchanged.
    """
    if "-" not in album:
        return album.strip()
    return album.split("-", 1)[1].strip()


def album_without_brackets(album: str) -> str:
    """Album name with bracketed segments removed and whitespace collapsed.

    Square, round and curly brackets all count. Stripping only "[...]" tags would
    leave "(Deluxe Edition)" style suffixes in place, and those rarely match the
    remote album title either.

    "Album (Deluxe Edition) [2011 Remaster]" -> "Album".
    """
    return _WHITESPACE.sub(" ", _BRACKETED.sub(" ", album)).strip()


def normalize_album_variants(album: str) -> list[str]:
    """Alternative album spellings to retry a failed resolution with.

    The second variant is derived from the first, so "Artist - Album [Deluxe]"
    yields "Album [Deluxe]" then "Album". Variants that are empty or repeat an
    earlier candidate are dropped since searching them again can't change the outcome.

    Returns:
        Up to two variants, in retry order
    """
    after_dash = album_after_dash(album)
    variants: list[str] = []
    seen = {album.strip().lower()}
    for candidate in (after_dash, album_without_brackets(after_dash)):
        if candidate and candidate.lower() not in seen:
            seen.add(candidate.lower())
            variants.append(candidate)
    return variants
