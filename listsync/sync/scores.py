"""
Score conversion between service-native scales and the canonical 0-10 scale.

All comparisons happen on the canonical integer scale. Rounding is half-up
(8.5 -> 9), never round-half-even, so Python's round() is not used here.
"""

import math
from enum import Enum
from fractions import Fraction
from typing import Optional

from listsync.errors import ScoreFormatUnknown

CANONICAL_MAX = 10


class ScoreFormat(str, Enum):
    """Score scales, named the way AniList names them."""
    POINT_100 = "POINT_100"
    POINT_10_DECIMAL = "POINT_10_DECIMAL"
    POINT_10 = "POINT_10"
    POINT_5 = "POINT_5"
    POINT_3 = "POINT_3"


# Multiply a native score by this to get the canonical value
_TO_CANONICAL = {
    ScoreFormat.POINT_100: Fraction(1, 10),
    ScoreFormat.POINT_10_DECIMAL: Fraction(1),
    ScoreFormat.POINT_10: Fraction(1),
    ScoreFormat.POINT_5: Fraction(2),
    ScoreFormat.POINT_3: Fraction(10, 3),
}


def round_half_up(value) -> int:
    """Round to the nearest integer, with .5 going up."""
    return math.floor(value + Fraction(1, 2))


def parse_score_format(value: Optional[str]) -> Optional[ScoreFormat]:
    """Return the ScoreFormat for a service string, or None if unrecognised."""
    if not value:
        return None
    try:
        return ScoreFormat(value.upper())
    except ValueError:
        return None


def to_canonical(raw_score: float, score_format: Optional[ScoreFormat]) -> int:
    """
    Convert a native score to the canonical 0-10 integer scale.

    Args:
        raw_score: Score as stored by the service
        score_format: Scale of raw_score

    Returns:
        Canonical score; 0 means "no score"

    Raises:
        ScoreFormatUnknown: If the scale is not known
    """
    if raw_score == 0:
        return 0

    if score_format not in _TO_CANONICAL:
        raise ScoreFormatUnknown(f"Unknown score format: {score_format!r}")

    normalized = Fraction(raw_score) * _TO_CANONICAL[score_format]
    normalized = min(max(normalized, Fraction(0)), Fraction(CANONICAL_MAX))

    return round_half_up(normalized)


def from_canonical(score: int, score_format: Optional[ScoreFormat]) -> int:
    """
    Convert a canonical 0-10 score to a service-native scale.

    The 3-point scale never turns a positive score into 0.

    Raises:
        ScoreFormatUnknown: If the scale is not known
    """
    if score == 0:
        return 0

    if score_format not in _TO_CANONICAL:
        raise ScoreFormatUnknown(f"Unknown score format: {score_format!r}")

    result = Fraction(score) / _TO_CANONICAL[score_format]
    if score_format is ScoreFormat.POINT_3 and score > 0 and result < 1:
        result = 1

    return round_half_up(result)
