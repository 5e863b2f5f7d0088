"""
Guardian for manually verified fields.

A record can mark some of its fields as manually verified:

    {"entity_id": "hamilton-2015", "capitalization": 12500000,
     "verification": {"fields": ["capitalization"], "date": "2026-03-01",
                      "notes": "Confirmed against SEC filing"}}

Automated updates to those fields are checked here. The discrepancy between
the verified and proposed value is graded low/medium/high/critical; only
high and critical block the write, smaller discrepancies pass with a note.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .corroboration import Change

LOW = "low"
MEDIUM = "medium"
HIGH = "high"
CRITICAL = "critical"

SEVERITY_ORDER = (LOW, MEDIUM, HIGH, CRITICAL)

FINANCIAL_FIELDS = frozenset({
    "capitalization",
    "weeklyRunningCost",
    "weeklyGrossTarget",
    "breakEvenGross",
    "cumulativeGross",
    "cumulativeProfit",
})
PERCENT_RANGE_FIELDS = frozenset({"estimatedRecoupmentPct"})
CATEGORICAL_FIELDS = frozenset({"designation", "status"})


@dataclass(frozen=True)
class Conflict:
    entity_id: str
    field: str
    verified_value: Any
    proposed_value: Any
    severity: str
    source_type: str = ""
    verified_date: Optional[str] = None
    notes: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return should_block(self)

    def describe(self) -> str:
        return describe_discrepancy(self.field, self.verified_value, self.proposed_value)

    def to_dict(self) -> dict:
        return {
            "entity_id": self.entity_id,
            "field": self.field,
            "verified_value": self.verified_value,
            "proposed_value": self.proposed_value,
            "severity": self.severity,
            "blocked": self.blocked,
            "discrepancy": self.describe(),
            "source_type": self.source_type,
            "verified_date": self.verified_date,
            "notes": self.notes,
        }


def _midpoint(value) -> float:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return (value[0] + value[1]) / 2
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


def _is_flip_field(field: str, verified, proposed) -> bool:
    if isinstance(verified, bool) or isinstance(proposed, bool):
        return True
    return field in CATEGORICAL_FIELDS


def _same(verified, proposed) -> bool:
    if isinstance(verified, str) and isinstance(proposed, str):
        return verified.strip().lower() == proposed.strip().lower()
    return verified == proposed


def calculate_severity(field: str, verified, proposed) -> str:
    """
    Grade the discrepancy between a verified value and a proposed one.

    Args:
        field: Field name
        verified: Manually verified value
        proposed: Automated proposal

    Returns:
        "low", "medium", "high" or "critical"
    """
    if field in PERCENT_RANGE_FIELDS:
        diff = abs(_midpoint(verified) - _midpoint(proposed))
        if diff > 30:
            return CRITICAL
        if diff > 15:
            return HIGH
        if diff > 5:
            return MEDIUM
        return LOW

    if _is_flip_field(field, verified, proposed):
        return LOW if _same(verified, proposed) else CRITICAL

    if field in FINANCIAL_FIELDS:
        v = verified or 0
        p = proposed or 0
        if v == 0 and p == 0:
            return LOW
        if v == 0 or p == 0:
            return CRITICAL
        ratio = abs(v - p) / max(abs(v), abs(p))
        if ratio > 0.50:
            return CRITICAL
        if ratio > 0.30:
            return HIGH
        if ratio > 0.15:
            return MEDIUM
        return LOW

    return MEDIUM


def _money(value) -> str:
    if value is None:
        return "null"
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return str(value)
    if abs(value) >= 1_000_000:
        return f"${value / 1_000_000:.1f}M"
    if abs(value) >= 1_000:
        return f"${round(value / 1_000)}K"
    return f"${value}"


def _pct(value) -> str:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return f"{value[0]}-{value[1]}%"
    if isinstance(value, (int, float)):
        return f"{value}%"
    return str(value)


def describe_discrepancy(field: str, verified, proposed) -> str:
    """Human-readable note shown with a conflict, blocked or not."""
    if field in PERCENT_RANGE_FIELDS:
        diff = abs(_midpoint(verified) - _midpoint(proposed))
        return f"verified {_pct(verified)}, proposed {_pct(proposed)} ({diff:g}pt difference)"

    if _is_flip_field(field, verified, proposed):
        return f"verified {verified}, proposed {proposed}"

    if field in FINANCIAL_FIELDS:
        change = ""
        if isinstance(verified, (int, float)) and verified and isinstance(proposed, (int, float)):
            pct = (proposed - verified) / verified * 100
            change = f" ({'+' if pct >= 0 else ''}{pct:.1f}% change)"
        return f"verified {_money(verified)}, proposed {_money(proposed)}{change}"

    return f"verified {verified!r}, proposed {proposed!r}"


def detect_conflict(change: Change, record: Optional[Dict[str, Any]]) -> Optional[Conflict]:
    """
    Conflict for a change that touches a manually verified field, else None.
    """
    if not record:
        return None
    verification = record.get("verification") or {}
    fields = verification.get("fields") or []
    if change.field not in fields:
        return None

    verified = record.get(change.field)
    if verified is None:
        verified = change.old_value
    if _same(verified, change.new_value):
        return None

    return Conflict(
        entity_id=change.entity_id,
        field=change.field,
        verified_value=verified,
        proposed_value=change.new_value,
        severity=calculate_severity(change.field, verified, change.new_value),
        source_type=change.source_type,
        verified_date=verification.get("date"),
        notes=verification.get("notes"),
    )


def should_block(conflict: Optional[Conflict]) -> bool:
    if conflict is None:
        return False
    return conflict.severity in (HIGH, CRITICAL)
