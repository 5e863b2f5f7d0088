"""
Explicit rating parsing: turn a critic's own stated rating into a 0-100 score.

Conversions are a fixed table, not a model. Letter grades and the common
star scales map to exact integers; other "X out of Y" scales are
proportional. Designations such as "Critic's Pick" are recognised but carry
no score.
"""

import re
from dataclasses import dataclass
from typing import Optional

from .buckets import round_half_up

LETTER_GRADES = {
    "A+": 97,
    "A": 93,
    "A-": 90,
    "B+": 87,
    "B": 83,
    "B-": 80,
    "C+": 77,
    "C": 73,
    "C-": 70,
    "D+": 67,
    "D": 60,
    "D-": 57,
    "F": 50,
}

STARS_OUT_OF_5 = {
    5: 100, 4.5: 90, 4: 80, 3.5: 70, 3: 60, 2.5: 50, 2: 40, 1.5: 30, 1: 20, 0.5: 10, 0: 0,
}

STARS_OUT_OF_4 = {
    4: 100, 3.5: 88, 3: 75, 2.5: 63, 2: 50, 1.5: 38, 1: 25, 0.5: 13, 0: 0,
}

SENTIMENT_RATINGS = {"rave": 90, "positive": 75, "mixed": 60, "negative": 40, "pan": 25}
THUMB_RATINGS = {"up": 80, "meh": 60, "flat": 60, "down": 40}

DESIGNATION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^recommended$",
        r"^highly[\s_-]?recommended$",
        r"^critics?['’]?s?[\s_-]?pick$",
        r"^critics?['’]?s?[\s_-]?choice$",
        r"^must[\s_-]?see$",
        r"^editor['’]?s?[\s_-]?choice$",
        r"^essential$",
    )
]

_GRADE = r"[A-DF][+\-−–]?"
_LETTER_RE = re.compile(rf"^({_GRADE})$", re.IGNORECASE)
_LETTER_RANGE_RE = re.compile(rf"^({_GRADE})\s*(?:/|to)\s*({_GRADE})$", re.IGNORECASE)
_FRACTION_RE = re.compile(
    r"^(\d+(?:\.\d+)?)\s*(?:out\s*of|/)\s*(\d+)\s*(?:stars?)?$", re.IGNORECASE
)
_STARS_ONLY_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*stars?$", re.IGNORECASE)
_NUMERIC_RE = re.compile(r"^(\d+(?:\.\d+)?)$")
_SENTIMENT_RE = re.compile(r"^(?:sentiment:\s*)?(rave|positive|mixed|negative|pan)$", re.IGNORECASE)
_THUMB_RE = re.compile(r"^(?:thumbs?\s*)?(up|down|meh|flat)$", re.IGNORECASE)
_UNICODE_STARS_RE = re.compile(r"^([★✭✮⭐]+)\s*(½)?\s*([☆✩]*)$")


@dataclass(frozen=True)
class ParsedRating:
    """Result of parsing one rating string. score is None when not scoreable."""

    kind: str
    value: str
    score: Optional[int] = None

    @property
    def scoreable(self) -> bool:
        return self.score is not None


def _normalize_grade(grade: str) -> str:
    return grade.upper().replace("−", "-").replace("–", "-")


def convert_stars(stars: float, out_of: int) -> Optional[int]:
    """Star count on a scale of out_of to 0-100. None for impossible values."""
    if out_of <= 0 or stars < 0 or stars > out_of:
        return None
    table = STARS_OUT_OF_5 if out_of == 5 else STARS_OUT_OF_4 if out_of == 4 else None
    if table is not None and stars in table:
        return table[stars]
    return round_half_up(stars / out_of * 100)


def parse_rating(raw) -> Optional[ParsedRating]:
    """
    Parse an explicit rating as written by the critic or aggregator.

    Returns:
        ParsedRating, or None for empty input. Unrecognised text yields
        kind "unknown" with no score.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        return ParsedRating(kind="unknown", value=str(raw))
    if isinstance(raw, (int, float)):
        raw = str(raw)
    if not isinstance(raw, str):
        return ParsedRating(kind="unknown", value=str(raw))
    rating = raw.strip()
    if not rating:
        return None

    for pattern in DESIGNATION_PATTERNS:
        if pattern.match(rating):
            return ParsedRating(kind="designation", value=rating)

    m = _NUMERIC_RE.match(rating)
    if m:
        value = float(m.group(1))
        if 0 <= value <= 100:
            return ParsedRating(kind="numeric", value=rating, score=round_half_up(value))

    m = _LETTER_RANGE_RE.match(rating)
    if m:
        g1, g2 = _normalize_grade(m.group(1)), _normalize_grade(m.group(2))
        if g1 in LETTER_GRADES and g2 in LETTER_GRADES:
            avg = (LETTER_GRADES[g1] + LETTER_GRADES[g2]) / 2
            return ParsedRating(kind="letter-range", value=f"{g1}/{g2}", score=round_half_up(avg))

    m = _LETTER_RE.match(rating)
    if m:
        grade = _normalize_grade(m.group(1))
        if grade in LETTER_GRADES:
            return ParsedRating(kind="letter", value=grade, score=LETTER_GRADES[grade])

    m = _FRACTION_RE.match(rating)
    if m:
        stars, out_of = float(m.group(1)), int(m.group(2))
        score = convert_stars(stars, out_of)
        return ParsedRating(kind=f"stars-{out_of}", value=f"{stars:g}/{out_of}", score=score)

    m = _STARS_ONLY_RE.match(rating)
    if m:
        stars = float(m.group(1))
        return ParsedRating(kind="stars-5", value=f"{stars:g}/5", score=convert_stars(stars, 5))

    m = _UNICODE_STARS_RE.match(rating)
    if m:
        filled = len(m.group(1)) + (0.5 if m.group(2) else 0)
        total = len(m.group(1)) + (1 if m.group(2) else 0) + len(m.group(3))
        # A bare run of filled stars is read on the usual five-star scale
        has_blanks = bool(m.group(2) or m.group(3))
        out_of = total if has_blanks and total >= 4 else 5
        return ParsedRating(kind=f"stars-{out_of}", value=f"{filled:g}/{out_of}",
                            score=convert_stars(filled, out_of))

    m = _SENTIMENT_RE.match(rating)
    if m:
        key = m.group(1).lower()
        return ParsedRating(kind="sentiment", value=key, score=SENTIMENT_RATINGS[key])

    m = _THUMB_RE.match(rating)
    if m:
        key = m.group(1).lower()
        return ParsedRating(kind="thumb", value=key, score=THUMB_RATINGS[key])

    return ParsedRating(kind="unknown", value=rating)


def rating_to_score(raw) -> Optional[int]:
    parsed = parse_rating(raw)
    return parsed.score if parsed else None


# Patterns for ratings embedded in running text. Bare "X/Y" is only trusted
# on the 4, 5 and 10 point scales; anything else is usually a date or a count.
_TEXT_PATTERNS = [
    re.compile(rf"\bgrade\s*[:\-]?\s*((?-i:{_GRADE}(?:\s*/\s*{_GRADE})?))(?![A-Za-z])", re.IGNORECASE),
    re.compile(r"(?<![\d/])(\d(?:\.\d)?)\s*(?:out\s+of|/)\s*(4|5|10)\b(?!\s*/)", re.IGNORECASE),
    re.compile(r"(?<![\d.])(\d(?:\.\d)?)\s*stars?\b", re.IGNORECASE),
    re.compile(r"([★✭✮⭐]+\s*½?\s*[☆✩]*)"),
]


def extract_rating_from_text(text: Optional[str]) -> Optional[ParsedRating]:
    """
    Find the first scoreable rating mentioned in review text.

    Returns:
        ParsedRating with a score, or None when the text states no rating
    """
    if not isinstance(text, str) or not text.strip():
        return None
    grade_re, fraction_re, stars_re, unicode_re = _TEXT_PATTERNS

    m = grade_re.search(text)
    if m:
        parsed = parse_rating(re.sub(r"\s+", "", m.group(1)))
        if parsed and parsed.scoreable:
            return parsed

    m = fraction_re.search(text)
    if m:
        parsed = parse_rating(f"{m.group(1)}/{m.group(2)}")
        if parsed and parsed.scoreable:
            return parsed

    m = stars_re.search(text)
    if m:
        parsed = parse_rating(f"{m.group(1)} stars")
        if parsed and parsed.scoreable:
            return parsed

    m = unicode_re.search(text)
    if m:
        parsed = parse_rating(m.group(1).strip())
        if parsed and parsed.scoreable:
            return parsed
    return None
