"""
The five ordered score buckets and the arithmetic around them.
"""

import math
from enum import Enum
from typing import Iterable, Optional, Tuple


class Bucket(str, Enum):
    PAN = "Pan"
    NEGATIVE = "Negative"
    MIXED = "Mixed"
    POSITIVE = "Positive"
    RAVE = "Rave"

    @property
    def ordinal(self) -> int:
        return _ORDER.index(self)

    @classmethod
    def parse(cls, value) -> Optional["Bucket"]:
        """Case-insensitive lookup by name; None for anything unrecognised."""
        if isinstance(value, Bucket):
            return value
        if not isinstance(value, str):
            return None
        for b in cls:
            if b.value.lower() == value.strip().lower():
                return b
        return None


_ORDER = (Bucket.PAN, Bucket.NEGATIVE, Bucket.MIXED, Bucket.POSITIVE, Bucket.RAVE)

BUCKET_RANGES = {
    Bucket.RAVE: (85, 100),
    Bucket.POSITIVE: (70, 84),
    Bucket.MIXED: (55, 69),
    Bucket.NEGATIVE: (35, 54),
    Bucket.PAN: (0, 34),
}

POSITIVE = "positive"
NEUTRAL = "neutral"
NEGATIVE = "negative"

_DIRECTIONS = {
    Bucket.RAVE: POSITIVE,
    Bucket.POSITIVE: POSITIVE,
    Bucket.MIXED: NEUTRAL,
    Bucket.NEGATIVE: NEGATIVE,
    Bucket.PAN: NEGATIVE,
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def bucket_range(bucket: Bucket) -> Tuple[int, int]:
    return BUCKET_RANGES[bucket]


def score_to_bucket(score: float) -> Bucket:
    """Bucket for a score; fractional scores are rounded first."""
    s = round_half_up(max(0.0, min(100.0, float(score))))
    for bucket in reversed(_ORDER):
        low, _high = BUCKET_RANGES[bucket]
        if s >= low:
            return bucket
    return Bucket.PAN


def clamp_to_bucket(score: float, bucket: Bucket) -> int:
    low, high = BUCKET_RANGES[bucket]
    return max(low, min(high, round_half_up(score)))


def bucket_distance(a: Bucket, b: Bucket) -> int:
    return abs(a.ordinal - b.ordinal)


def direction(bucket: Bucket) -> str:
    """positive / neutral / negative."""
    return _DIRECTIONS[bucket]


def mean(values: Iterable[float]) -> float:
    values = list(values)
    return sum(values) / len(values)


def median(values: Iterable[float]) -> float:
    ordered = sorted(values)
    n = len(ordered)
    mid = n // 2
    if n % 2:
        return float(ordered[mid])
    return (ordered[mid - 1] + ordered[mid]) / 2
