"""Text similarity helpers for diversity checks."""

from difflib import SequenceMatcher
from itertools import combinations
from typing import Iterable, Sequence


def normalize_text(text: str) -> str:
    """Collapse whitespace and lower-case for comparison."""
    return " ".join(text.split()).lower()


def text_similarity(a: str, b: str) -> float:
    """Similarity ratio in [0, 1] between two prompt texts.

    Texts are compared after whitespace normalization and lower-casing, so
    variants that differ only in spacing or case count as duplicates.
    """
    a, b = normalize_text(a), normalize_text(b)
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a, b).ratio()


def max_similarity(text: str, others: Iterable[str]) -> float:
    """Highest similarity of text to any of the other texts."""
    return max((text_similarity(text, other) for other in others), default=0.0)


def population_diversity(texts: Sequence[str]) -> float:
    """Mean pairwise dissimilarity; 0.0 for fewer than two texts."""
    pairs = list(combinations(texts, 2))
    if not pairs:
        return 0.0
    return sum(1.0 - text_similarity(a, b) for a, b in pairs) / len(pairs)
