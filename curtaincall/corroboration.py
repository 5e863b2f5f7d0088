"""
Corroboration of proposed numeric record changes.

A proposed change (new capitalization, weekly gross, recoupment range...) is
compared against every independent prior observation of the same entity and
field. Observations within a relative tolerance support it, other concrete
values contradict it, and the change's confidence is adjusted accordingly.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

from .config import Settings

HIGH = "high"
FLAGGED = "flagged"

SOURCE_WEIGHTS = {
    "Deep Research": 1.2,
    "SEC Form D": 1.0,
    "Deadline": 0.9,
    "Variety": 0.9,
    "New York Times": 0.85,
    "Broadway Journal": 0.8,
    "Playbill": 0.75,
    "Reddit Grosses Analysis": 0.7,
    "Reddit comment": 0.4,
    "estimate": 0.3,
}
DEFAULT_SOURCE_WEIGHT = 0.5

# Cost figures are only comparable between compatible methodologies
METHODOLOGY_FIELDS = frozenset({"weeklyRunningCost", "capitalization"})
METHODOLOGY_COMPATIBILITY = {
    "reddit-standard": {"reddit-standard"},
    "trade-reported": {"trade-reported", "sec-filing", "producer-confirmed", "deep-research"},
    "sec-filing": {"trade-reported", "sec-filing", "producer-confirmed", "deep-research"},
    "producer-confirmed": {"trade-reported", "sec-filing", "producer-confirmed", "deep-research"},
    "deep-research": "all",
    "industry-estimate": {"industry-estimate"},
}

_EPSILON = 1e-9


@dataclass(frozen=True)
class Observation:
    entity_id: str
    field: str
    value: Any
    source_type: str
    source_url: Optional[str] = None
    methodology: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Observation":
        return cls(
            entity_id=data["entity_id"],
            field=data["field"],
            value=data.get("value"),
            source_type=data.get("source_type") or "",
            source_url=data.get("source_url"),
            methodology=data.get("methodology"),
        )


@dataclass(frozen=True)
class Change:
    """A proposed update to one field of one numeric record."""

    entity_id: str
    field: str
    new_value: Any
    old_value: Any = None
    source_type: str = ""
    source_url: Optional[str] = None
    confidence: str = "medium"
    methodology: Optional[str] = None

    @property
    def weight(self) -> float:
        return source_weight(self.source_type)

    @classmethod
    def from_dict(cls, data: dict) -> "Change":
        return cls(
            entity_id=data["entity_id"],
            field=data["field"],
            new_value=data.get("new_value"),
            old_value=data.get("old_value"),
            source_type=data.get("source_type") or "",
            source_url=data.get("source_url"),
            confidence=data.get("confidence") or "medium",
            methodology=data.get("methodology"),
        )


@dataclass(frozen=True)
class ValidatedChange:
    change: Change
    confidence: str
    supporting: Tuple[Observation, ...] = ()
    contradicting: Tuple[Observation, ...] = ()
    notes: List[str] = field(default_factory=list)

    @property
    def flagged(self) -> bool:
        return self.confidence == FLAGGED

    def to_dict(self) -> dict:
        return {
            "entity_id": self.change.entity_id,
            "field": self.change.field,
            "old_value": self.change.old_value,
            "new_value": self.change.new_value,
            "source_type": self.change.source_type,
            "source_weight": self.change.weight,
            "original_confidence": self.change.confidence,
            "validated_confidence": self.confidence,
            "supporting": [o.source_type for o in self.supporting],
            "contradicting": [o.source_type for o in self.contradicting],
            "notes": "; ".join(self.notes) if self.notes else "No corroborating sources found",
        }


def source_weight(source_type: Optional[str]) -> float:
    """Credibility weight for a source type; unknown types get 0.5."""
    return SOURCE_WEIGHTS.get(source_type, DEFAULT_SOURCE_WEIGHT)


def methodologies_comparable(m1: Optional[str], m2: Optional[str]) -> bool:
    if not m1 or not m2:
        return True
    c1 = METHODOLOGY_COMPATIBILITY.get(m1)
    c2 = METHODOLOGY_COMPATIBILITY.get(m2)
    if c1 == "all" or c2 == "all":
        return True
    return bool((c1 and m2 in c1) or (c2 and m1 in c2))


def _is_number(v) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def values_match(a, b, tolerance: float = 0.10) -> bool:
    """
    True when two observed values agree.

    Numbers agree within a relative tolerance of the larger magnitude
    (boundary inclusive), sequences element-wise, strings case-insensitively.
    """
    if a is None or b is None:
        return a is None and b is None
    if _is_number(a) and _is_number(b):
        larger = max(abs(a), abs(b))
        if larger == 0:
            return a == b
        return abs(a - b) <= larger * tolerance + _EPSILON * larger
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(values_match(x, y, tolerance) for x, y in zip(a, b))
    if isinstance(a, str) and isinstance(b, str):
        return a.strip().lower() == b.strip().lower()
    return a == b


def find_corroboration(
    change: Change,
    observations: Iterable[Observation],
    settings: Optional[Settings] = None,
) -> Tuple[List[Observation], List[Observation]]:
    """
    Split prior observations into those supporting and contradicting a change.

    Args:
        change: Proposed change
        observations: Independent prior observations (any entity/field)
        settings: Relative tolerance

    Returns:
        (supporting, contradicting)
    """
    settings = settings or Settings()
    supporting: List[Observation] = []
    contradicting: List[Observation] = []
    for obs in observations:
        if obs.entity_id != change.entity_id or obs.field != change.field:
            continue
        # No self-corroboration
        if obs.source_type == change.source_type and obs.source_url == change.source_url:
            continue
        if change.field in METHODOLOGY_FIELDS and not methodologies_comparable(
            change.methodology, obs.methodology
        ):
            continue
        if values_match(change.new_value, obs.value, settings.corroboration_tolerance):
            supporting.append(obs)
        elif obs.value is not None:
            contradicting.append(obs)
    return supporting, contradicting


def calculate_confidence(original: str, supporting: int, contradicting: int) -> str:
    if supporting >= 2:
        return HIGH
    if contradicting > supporting:
        return FLAGGED
    return original


def validate_change(
    change: Change,
    observations: Iterable[Observation],
    settings: Optional[Settings] = None,
) -> ValidatedChange:
    supporting, contradicting = find_corroboration(change, observations, settings)
    confidence = calculate_confidence(change.confidence, len(supporting), len(contradicting))

    notes = []
    if supporting:
        notes.append(
            f"{len(supporting)} supporting source(s): "
            + ", ".join(o.source_type for o in supporting)
        )
    if contradicting:
        notes.append(
            f"{len(contradicting)} contradicting source(s): "
            + ", ".join(o.source_type for o in contradicting)
        )
    if confidence != change.confidence:
        notes.append(f"Confidence adjusted: {change.confidence} -> {confidence}")

    return ValidatedChange(
        change=change,
        confidence=confidence,
        supporting=tuple(supporting),
        contradicting=tuple(contradicting),
        notes=notes,
    )

