"""Lexical duplicate detection for candidate facts.

The similarity measure is a cheap heuristic: for the shorter normalized
string, count how many of its characters occur anywhere in the longer one,
then divide by the longer length. It ignores order and multiplicity, so
short strings over a similar alphabet can score as duplicates.
"""

from .models import MemoryFact

DEFAULT_THRESHOLD = 0.8


def normalize(content: str) -> str:
    return content.lower().strip()


def calculate_similarity(a: str, b: str) -> float:
    """Character-inclusion ratio in [0, 1]; 1.0 when both strings are empty."""
    longer, shorter = (a, b) if len(a) > len(b) else (b, a)
    if not longer:
        return 1.0
    matches = sum(1 for ch in shorter if ch in longer)
    return matches / len(longer)


def is_duplicate(
    existing: list[MemoryFact], candidate: MemoryFact, threshold: float = DEFAULT_THRESHOLD
) -> bool:
    """True if candidate matches any existing fact exactly or above threshold."""
    new = normalize(candidate.content)
    for fact in existing:
        old = normalize(fact.content)
        if old == new:
            return True
        if calculate_similarity(old, new) > threshold:
            return True
    return False


def filter_duplicates(
    existing: list[MemoryFact],
    candidates: list[MemoryFact],
    threshold: float = DEFAULT_THRESHOLD,
) -> list[MemoryFact]:
    """Candidates that duplicate neither a stored fact nor an earlier candidate."""
    accepted: list[MemoryFact] = []
    for candidate in candidates:
        if is_duplicate(existing, candidate, threshold):
            continue
        if is_duplicate(accepted, candidate, threshold):
            continue
        accepted.append(candidate)
    return accepted
