"""
Title normalization and multi-tier title matching.

Matching tiers, tried in order across the three localized title fields:
1. Exact, case-insensitive
2. Normalized equality
3. Word overlap similarity
4. Levenshtein similarity

Titles are only ever compared field-to-field (English with English, native
with native, romanized with romanized).
"""

import re
from collections import Counter
from typing import Callable, List, Optional, Tuple

from rapidfuzz.distance import Levenshtein

from listsync.sync.models import TitleSet
from listsync.utils.logging import get_logger

logger = get_logger(__name__)

SIMILARITY_THRESHOLD = 98.0
LEVENSHTEIN_THRESHOLD = 98.0

_BRACKETS_RE = re.compile(r"\(.*\)")
_WHITESPACE_RE = re.compile(r"\s+")
_REMOVED_CHARS = str.maketrans("", "", ":!?\"'")
_SPACED_CHARS = str.maketrans({"-": " ", "_": " ", ".": " ", ",": " "})


def normalize(title: str) -> str:
    """
    Normalize a title for comparison.

    Lowercases, drops parenthesized text, strips punctuation and
    collapses whitespace.
    """
    normalized = title.lower()
    normalized = _BRACKETS_RE.sub("", normalized)
    normalized = normalized.translate(_REMOVED_CHARS)
    normalized = normalized.translate(_SPACED_CHARS)
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    return normalized.strip()


def exact_match(title1: str, title2: str) -> bool:
    return bool(title1) and bool(title2) and title1.casefold() == title2.casefold()


def normalized_match(title1: str, title2: str) -> bool:
    norm1 = normalize(title1)
    return bool(norm1) and norm1 == normalize(title2)


def word_similarity(title1: str, title2: str) -> float:
    """
    Percentage of shared words between two titles.

    Uses multiset intersection, so the score is symmetric.
    """
    words1 = normalize(title1).split()
    words2 = normalize(title2).split()

    if not words1 or not words2:
        return 0.0

    if words1 == words2:
        return 100.0

    common = sum((Counter(words1) & Counter(words2)).values())
    return (common * 2) / (len(words1) + len(words2)) * 100.0


def levenshtein_similarity(title1: str, title2: str) -> float:
    """Similarity percentage based on edit distance of normalized titles."""
    norm1 = normalize(title1)
    norm2 = normalize(title2)

    if not norm1 or not norm2:
        return 0.0

    if norm1 == norm2:
        return 100.0

    max_len = max(len(norm1), len(norm2))
    distance = Levenshtein.distance(norm1, norm2)

    return max(0.0, (1.0 - distance / max_len) * 100.0)


def _similar(scorer: Callable[[str, str], float], threshold: float) -> Callable[[str, str], bool]:
    return lambda a, b: scorer(a, b) >= threshold


_TIERS: List[Tuple[str, Callable[[str, str], bool]]] = [
    ("exact", exact_match),
    ("normalized", normalized_match),
    ("fuzzy", _similar(word_similarity, SIMILARITY_THRESHOLD)),
    ("levenshtein", _similar(levenshtein_similarity, LEVENSHTEIN_THRESHOLD)),
]


def match_tier(titles1: TitleSet, titles2: TitleSet) -> Optional[str]:
    """
    Find the first tier at which two title sets match.

    Returns:
        "<tier>:<field>" for the first hit, None if nothing matches
    """
    pairs = titles1.pairs_with(titles2)
    if not pairs:
        return None

    for tier_name, matches in _TIERS:
        for field_name, title1, title2 in pairs:
            if matches(title1, title2):
                logger.debug(
                    "Title match",
                    tier=tier_name,
                    field=field_name,
                    source=title1,
                    target=title2,
                )
                return f"{tier_name}:{field_name}"

    return None


def title_matching_levels(titles1: TitleSet, titles2: TitleSet) -> bool:
    """True when any same-field title pair matches at any tier."""
    return match_tier(titles1, titles2) is not None
