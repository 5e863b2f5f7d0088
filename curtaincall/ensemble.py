"""
Ensemble voter: combine up to three independent model judgments of one review.

The voter never raises and never silently trusts a single noisy judgment.
Every degraded path lowers confidence, and every flagged result carries a
reason naming the models, buckets and deltas involved so a review queue can
be triaged by the actual disagreement.

Source tags:
    unanimous              3 valid, same bucket
    majority               3 valid, 2 agree
    no-consensus           3 valid, all different
    two-model-fallback     2 valid
    single-model-fallback  1 valid
    all-failed             0 valid (neutral sentinel)
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .buckets import (
    Bucket,
    bucket_distance,
    bucket_range,
    clamp_to_bucket,
    mean,
    median,
    score_to_bucket,
)
from .config import Settings

HIGH = "high"
MEDIUM = "medium"
LOW = "low"
_CONFIDENCE_RANK = {LOW: 0, MEDIUM: 1, HIGH: 2}

UNANIMOUS = "unanimous"
MAJORITY = "majority"
NO_CONSENSUS = "no-consensus"
TWO_MODEL_FALLBACK = "two-model-fallback"
SINGLE_MODEL_FALLBACK = "single-model-fallback"
ALL_FAILED = "all-failed"


def lower_confidence(a: str, b: str) -> str:
    return a if _CONFIDENCE_RANK.get(a, 0) <= _CONFIDENCE_RANK.get(b, 0) else b


@dataclass(frozen=True)
class ModelScore:
    """
    One model's judgment. The score is clamped into the bucket's sub-range
    on construction. A judgment with an error marker (or no bucket) is
    ignored by combine().
    """

    model: str
    bucket: Optional[Bucket] = None
    score: Optional[int] = None
    confidence: str = MEDIUM
    error: Optional[str] = None

    def __post_init__(self):
        if self.error is not None:
            return
        bucket = Bucket.parse(self.bucket)
        if bucket is None and self.score is not None:
            bucket = score_to_bucket(self.score)
        if bucket is None:
            object.__setattr__(self, "error", "missing bucket and score")
            return
        object.__setattr__(self, "bucket", bucket)
        low, high = bucket_range(bucket)
        raw = self.score if self.score is not None else (low + high) / 2
        object.__setattr__(self, "score", clamp_to_bucket(raw, bucket))
        if self.confidence not in _CONFIDENCE_RANK:
            object.__setattr__(self, "confidence", LOW)

    @classmethod
    def failed(cls, model: str, error: str) -> "ModelScore":
        return cls(model=model, error=error)

    @property
    def is_valid(self) -> bool:
        return self.error is None and self.bucket is not None

    def describe(self) -> str:
        return f"{self.model}={self.bucket.value} ({self.score})"


@dataclass(frozen=True)
class Outlier:
    model: str
    bucket: Bucket
    score: int


@dataclass(frozen=True)
class EnsembleResult:
    bucket: Bucket
    score: int
    confidence: str
    source: str
    needs_review: bool = False
    reason: Optional[str] = None
    models: Tuple[str, ...] = ()
    failed_models: Tuple[str, ...] = ()
    outlier: Optional[Outlier] = None
    agreement: str = ""
    judgments: Tuple[ModelScore, ...] = field(default=(), repr=False, compare=False)

    def to_dict(self) -> dict:
        return {
            "bucket": self.bucket.value,
            "score": self.score,
            "confidence": self.confidence,
            "source": self.source,
            "needs_review": self.needs_review,
            "reason": self.reason,
            "models": list(self.models),
            "failed_models": list(self.failed_models),
            "outlier": (
                {"model": self.outlier.model, "bucket": self.outlier.bucket.value,
                 "score": self.outlier.score}
                if self.outlier else None
            ),
            "agreement": self.agreement,
        }


def _central(scores: List[int], spread_threshold: float) -> Tuple[float, bool]:
    """Mean when the spread is tight, median otherwise. Returns (value, tight)."""
    spread = max(scores) - min(scores)
    if spread <= spread_threshold:
        return mean(scores), True
    return median(scores), False


def combine(
    s1: Optional[ModelScore],
    s2: Optional[ModelScore],
    s3: Optional[ModelScore],
    settings: Optional[Settings] = None,
) -> EnsembleResult:
    """
    Combine three judgment slots into one EnsembleResult.

    Args:
        s1, s2, s3: Model judgments; None or an error marker means the slot failed
        settings: Thresholds (spread, two-model delta, neutral sentinel)

    Returns:
        EnsembleResult, never raises
    """
    settings = settings or Settings()
    slots = [s for s in (s1, s2, s3) if s is not None]
    valid = [s for s in slots if s.is_valid]
    failed = tuple(s.model for s in slots if not s.is_valid)
    models = tuple(s.model for s in valid)
    common = dict(models=models, failed_models=failed, judgments=tuple(valid))

    if not valid:
        neutral = int(settings.neutral_score)
        return EnsembleResult(
            bucket=score_to_bucket(neutral),
            score=neutral,
            confidence=LOW,
            source=ALL_FAILED,
            needs_review=True,
            reason="all models failed",
            agreement="no valid judgments",
            **common,
        )

    if len(valid) == 1:
        only = valid[0]
        return EnsembleResult(
            bucket=only.bucket,
            score=only.score,
            confidence=LOW,
            source=SINGLE_MODEL_FALLBACK,
            needs_review=True,
            reason=f"single model only: {only.describe()}",
            agreement=f"1 model ({only.model})",
            **common,
        )

    if len(valid) == 2:
        return _combine_two(valid[0], valid[1], settings, common)

    return _combine_three(valid, settings, common)


def _combine_two(a: ModelScore, b: ModelScore, settings: Settings, common: dict) -> EnsembleResult:
    avg = mean([a.score, b.score])
    confidence = lower_confidence(a.confidence, b.confidence)

    if a.bucket == b.bucket:
        return EnsembleResult(
            bucket=a.bucket,
            score=clamp_to_bucket(avg, a.bucket),
            confidence=confidence,
            source=TWO_MODEL_FALLBACK,
            agreement=f"2/2 agree on {a.bucket.value}",
            **common,
        )

    bucket = score_to_bucket(avg)
    distance = bucket_distance(a.bucket, b.bucket)
    delta = abs(a.score - b.score)
    problems = []
    if distance >= 2:
        problems.append(f"{distance} buckets apart")
    if delta > settings.two_model_delta_threshold:
        problems.append(f"score delta {delta} > {settings.two_model_delta_threshold:g}")
    flagged = bool(problems)
    return EnsembleResult(
        bucket=bucket,
        score=clamp_to_bucket(avg, bucket),
        confidence=LOW if flagged else confidence,
        source=TWO_MODEL_FALLBACK,
        needs_review=flagged,
        reason=f"{a.describe()} vs {b.describe()}: {', '.join(problems)}" if flagged else None,
        agreement=f"split {a.bucket.value}/{b.bucket.value}",
        **common,
    )


def _combine_three(valid: List[ModelScore], settings: Settings, common: dict) -> EnsembleResult:
    counts = Counter(s.bucket for s in valid)
    top_bucket, top_count = counts.most_common(1)[0]

    if top_count == 3:
        value, tight = _central([s.score for s in valid], settings.spread_threshold)
        return EnsembleResult(
            bucket=top_bucket,
            score=clamp_to_bucket(value, top_bucket),
            confidence=HIGH if tight else MEDIUM,
            source=UNANIMOUS,
            agreement=f"3/3 agree on {top_bucket.value}",
            **common,
        )

    if top_count == 2:
        agreeing = [s for s in valid if s.bucket == top_bucket]
        odd = next(s for s in valid if s.bucket != top_bucket)
        value, _tight = _central([s.score for s in agreeing], settings.spread_threshold)
        distance = bucket_distance(top_bucket, odd.bucket)
        flagged = distance >= 2
        reason = None
        if flagged:
            reason = (
                f"outlier {odd.describe()} is {distance} buckets from majority "
                f"{top_bucket.value} (2+ buckets)"
            )
        return EnsembleResult(
            bucket=top_bucket,
            score=clamp_to_bucket(value, top_bucket),
            confidence=MEDIUM,
            source=MAJORITY,
            needs_review=flagged,
            reason=reason,
            outlier=Outlier(model=odd.model, bucket=odd.bucket, score=odd.score),
            agreement=f"2/3 agree on {top_bucket.value}",
            **common,
        )

    med = median([s.score for s in valid])
    bucket = score_to_bucket(med)
    return EnsembleResult(
        bucket=bucket,
        score=clamp_to_bucket(med, bucket),
        confidence=LOW,
        source=NO_CONSENSUS,
        needs_review=True,
        reason="no consensus: " + ", ".join(s.describe() for s in valid),
        agreement="no bucket consensus, using median score",
        **common,
    )
