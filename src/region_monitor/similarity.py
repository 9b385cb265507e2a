"""Fuzzy text comparison for change detection on repeated OCR output.

OCR of an unchanged region rarely returns byte-identical text: a character
gets misread, punctuation drops out, line breaks move. Comparison therefore
works on whitespace-normalized text and treats two strings as the same when
their normalized Levenshtein similarity is above SIMILARITY_THRESHOLD.
"""

from __future__ import annotations


# Texts with similarity above this value are considered "the same".
SIMILARITY_THRESHOLD = 0.9


def normalize(text: str | None) -> str:
    """Collapse runs of whitespace (spaces, tabs, newlines) and trim."""
    if not text:
        return ""
    return " ".join(text.split())


def levenshtein_distance(s1: str, s2: str) -> int:
    """Edit distance with unit insert/delete/substitute costs.

    Only two rows of length ``len(s2) + 1`` are kept.
    """
    len2 = len(s2)
    prev = list(range(len2 + 1))
    curr = [0] * (len2 + 1)

    for i, c1 in enumerate(s1, start=1):
        curr[0] = i
        for j in range(1, len2 + 1):
            cost = 0 if c1 == s2[j - 1] else 1
            curr[j] = min(
                prev[j] + 1,         # deletion
                curr[j - 1] + 1,     # insertion
                prev[j - 1] + cost,  # substitution
            )
        prev, curr = curr, prev

    return prev[len2]


def similarity(s1: str, s2: str) -> float:
    """Return 1.0 for identical strings down to 0.0 for nothing in common."""
    if s1 == s2:
        return 1.0
    max_len = max(len(s1), len(s2))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(s1, s2) / max_len


def is_similar(s1: str, s2: str, threshold: float = SIMILARITY_THRESHOLD) -> bool:
    """Check whether two (normalized) texts are the same modulo OCR noise.

    Empty strings are only similar to each other.
    """
    if not s1 and not s2:
        return True
    if not s1 or not s2:
        return False
    if s1 == s2:
        return True
    return similarity(s1, s2) > threshold
