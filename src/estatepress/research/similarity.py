"""Fuzzy title similarity used for deduplication and uniqueness scoring."""

from __future__ import annotations

from fuzzywuzzy import fuzz


def similarity(a: str, b: str) -> float:
    """Return a case-insensitive similarity percentage in [0, 100]."""
    a, b = a.strip().lower(), b.strip().lower()
    if not a and not b:
        return 100.0
    return float(fuzz.ratio(a, b))


def is_duplicate(a: str, b: str, threshold: float = 70.0) -> bool:
    """True when two titles are similar enough to be the same topic."""
    return similarity(a, b) > threshold


def max_similarity(title: str, others: list[str]) -> float:
    """Highest similarity between ``title`` and any of ``others`` (0 if none)."""
    return max((similarity(title, other) for other in others), default=0.0)
