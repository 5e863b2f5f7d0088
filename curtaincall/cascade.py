"""
Scoring cascade: pick the single authoritative score for one review.

Tiers are evaluated top-down and the first one that yields a value wins:

    1. explicit-rating          critic's own stated rating (record field, then text)
    2. manual-override          human score, must carry a note
    3. ensemble                 ensemble result with medium/high confidence, not flagged
    4. aggregator-override      aggregator signal whose direction contradicts a weak ensemble
    5. ensemble-low-confidence  weak ensemble used verbatim
    6. aggregator-only          no ensemble at all, aggregator signal used

Records with no signal are left unscored. Whenever the scored text is an
excerpt the ensemble's confidence is treated as low before tier 3 is
evaluated.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .buckets import NEGATIVE, NEUTRAL, POSITIVE, direction, round_half_up
from .config import Settings
from .ensemble import HIGH, LOW, MEDIUM, EnsembleResult
from .errors import ValidationError
from .ratings import extract_rating_from_text, parse_rating

EXPLICIT_RATING = "explicit-rating"
MANUAL_OVERRIDE = "manual-override"
ENSEMBLE = "ensemble"
AGGREGATOR_OVERRIDE = "aggregator-override"
ENSEMBLE_LOW_CONFIDENCE = "ensemble-low-confidence"
AGGREGATOR_ONLY = "aggregator-only"

# Higher wins; merge never replaces a score with one from a lower tier
TIER_PRIORITY = {
    EXPLICIT_RATING: 6,
    MANUAL_OVERRIDE: 5,
    ENSEMBLE: 4,
    AGGREGATOR_OVERRIDE: 3,
    ENSEMBLE_LOW_CONFIDENCE: 2,
    AGGREGATOR_ONLY: 1,
}

SIGNAL_SCORES = {POSITIVE: 80, NEUTRAL: 60, NEGATIVE: 35}

_SIGNAL_ALIASES = {
    "positive": POSITIVE, "pos": POSITIVE, "up": POSITIVE, "thumbs up": POSITIVE, "fresh": POSITIVE,
    "neutral": NEUTRAL, "mixed": NEUTRAL, "meh": NEUTRAL, "flat": NEUTRAL,
    "negative": NEGATIVE, "neg": NEGATIVE, "down": NEGATIVE, "thumbs down": NEGATIVE,
}


def tier_rank(source: Optional[str]) -> int:
    return TIER_PRIORITY.get(source, 0)


def parse_signal(value) -> Optional[str]:
    """Aggregator thumb/sentiment value to positive/neutral/negative."""
    if not isinstance(value, str):
        return None
    return _SIGNAL_ALIASES.get(value.strip().lower())


@dataclass(frozen=True)
class CascadeOutcome:
    score: Optional[int]
    source: Optional[str]
    confidence: str
    needs_review: bool = False
    reason: Optional[str] = None
    explicit_rating: Optional[str] = None

    @property
    def scored(self) -> bool:
        return self.score is not None

    def apply_to(self, record: Dict[str, Any]) -> None:
        """Write the scoring-owned fields onto a record."""
        record["score"] = self.score
        record["score_source"] = self.source
        record["confidence"] = self.confidence
        record["needs_review"] = self.needs_review
        record["review_reason"] = self.reason


def scored_text(record: Dict[str, Any]) -> str:
    """Full text when there is any, else the longest aggregator excerpt."""
    text = record.get("cleaned_text") or record.get("raw_text")
    if text:
        return text
    excerpts = [e for e in (record.get("excerpts") or {}).values() if isinstance(e, str)]
    return max(excerpts, key=len, default="")


def is_excerpt(record: Dict[str, Any], settings: Optional[Settings] = None) -> bool:
    """True when the text available for scoring is only an excerpt."""
    settings = settings or Settings()
    if record.get("content_tier") in ("excerpt", "stub"):
        return True
    return len(scored_text(record).strip()) < settings.excerpt_length_floor


def record_label(record: Dict[str, Any]) -> str:
    return f"{record.get('show_id')}:{record.get('outlet_id')}|{record.get('critic_id')}"


def _manual_override(record: Dict[str, Any]) -> Optional[int]:
    override = record.get("manual_override")
    if not override:
        return None
    note = override.get("note")
    if not isinstance(note, str) or not note.strip():
        raise ValidationError(
            ["manual_override requires a non-empty note"],
            key=record_label(record),
        )
    score = override.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= 100:
        raise ValidationError(
            [f"manual_override score must be a number 0-100, got {score!r}"],
            key=record_label(record),
        )
    return round_half_up(score)


def resolve_score(
    record: Dict[str, Any],
    ensemble: Optional[EnsembleResult] = None,
    settings: Optional[Settings] = None,
) -> CascadeOutcome:
    """
    Run the cascade for one record.

    Args:
        record: Review record dict
        ensemble: Ensemble result for this record, if models were run
        settings: Excerpt floor and other thresholds

    Returns:
        CascadeOutcome whose source names the tier that fired

    Raises:
        ValidationError: manual override without a note, or with a bad score
    """
    settings = settings or Settings()

    parsed = parse_rating(record.get("explicit_rating"))
    if not (parsed and parsed.scoreable):
        parsed = extract_rating_from_text(scored_text(record))
    if parsed and parsed.scoreable:
        return CascadeOutcome(
            score=parsed.score, source=EXPLICIT_RATING, confidence=HIGH,
            explicit_rating=parsed.value,
        )

    override = _manual_override(record)
    if override is not None:
        return CascadeOutcome(score=override, source=MANUAL_OVERRIDE, confidence=HIGH)

    signal = parse_signal(record.get("aggregator_signal"))
    excerpt = is_excerpt(record, settings)

    if ensemble is None:
        if signal is None:
            return CascadeOutcome(
                score=None, source=None, confidence=LOW, needs_review=True,
                reason="no scoring signal available",
            )
        return CascadeOutcome(score=SIGNAL_SCORES[signal], source=AGGREGATOR_ONLY, confidence=LOW)

    confidence = LOW if excerpt else ensemble.confidence
    if confidence in (MEDIUM, HIGH) and not ensemble.needs_review:
        return CascadeOutcome(score=ensemble.score, source=ENSEMBLE, confidence=confidence)

    ensemble_direction = direction(ensemble.bucket)
    if signal is not None and signal != ensemble_direction:
        reason = (
            f"aggregator signal {signal} contradicts ensemble "
            f"{ensemble.bucket.value} ({ensemble_direction})"
        )
        if ensemble.reason:
            reason = f"{reason}; {ensemble.reason}"
        return CascadeOutcome(
            score=SIGNAL_SCORES[signal], source=AGGREGATOR_OVERRIDE, confidence=LOW,
            needs_review=ensemble.needs_review, reason=reason,
        )

    reason = ensemble.reason
    if excerpt:
        reason = f"{reason}; scored from excerpt" if reason else "scored from excerpt"
    return CascadeOutcome(
        score=ensemble.score, source=ENSEMBLE_LOW_CONFIDENCE, confidence=LOW,
        needs_review=ensemble.needs_review, reason=reason,
    )
