"""
Tests for the verified-field guardian.
"""

import pytest

from curtaincall.corroboration import Change
from curtaincall.guardian import (
    calculate_severity,
    describe_discrepancy,
    detect_conflict,
    should_block,
)


@pytest.fixture
def verified_record():
    return {
        "entity_id": "hamilton-2015",
        "capitalization": 12_500_000,
        "estimatedRecoupmentPct": [40, 60],
        "designation": "Windfall",
        "weeklyGross": 2_000_000,
        "verification": {
            "fields": ["capitalization", "estimatedRecoupmentPct", "designation"],
            "date": "2026-03-01",
            "notes": "Confirmed against SEC filing",
        },
    }


def change(field, new_value, old_value=None):
    return Change(entity_id="hamilton-2015", field=field, new_value=new_value,
                  old_value=old_value, source_type="Reddit Grosses Analysis")


class TestSeverity:

    @pytest.mark.parametrize("proposed,severity", [
        (12_000_000, "low"),       # 4%
        (10_000_000, "medium"),    # 20%
        (8_000_000, "high"),       # 36%
        (5_000_000, "critical"),   # 60%
        (0, "critical"),
    ])
    def test_financial_relative_difference(self, proposed, severity):
        assert calculate_severity("capitalization", 12_500_000, proposed) == severity

    @pytest.mark.parametrize("proposed,severity", [
        ([45, 60], "low"),         # midpoint moves 2.5 points
        ([50, 70], "medium"),      # 10 points
        ([60, 80], "high"),        # 20 points
        ([80, 100], "critical"),   # 40 points
    ])
    def test_percent_range_point_difference(self, proposed, severity):
        assert calculate_severity("estimatedRecoupmentPct", [40, 60], proposed) == severity

    def test_categorical_flip_is_critical(self):
        assert calculate_severity("designation", "Windfall", "Flop") == "critical"
        assert calculate_severity("designation", "Windfall", "windfall") == "low"
        assert calculate_severity("isRecouped", True, False) == "critical"

    def test_other_fields_medium(self):
        assert calculate_severity("theater", "Richard Rodgers", "Imperial") == "medium"


class TestDetectConflict:

    def test_unverified_field_passes(self, verified_record):
        assert detect_conflict(change("weeklyGross", 100), verified_record) is None

    def test_no_record_passes(self):
        assert detect_conflict(change("capitalization", 1), None) is None

    def test_identical_value_is_not_a_conflict(self, verified_record):
        assert detect_conflict(change("capitalization", 12_500_000), verified_record) is None

    def test_small_adjustment_passes_with_note(self, verified_record):
        conflict = detect_conflict(change("capitalization", 11_000_000), verified_record)
        assert conflict.severity == "low"
        assert not should_block(conflict)
        assert not conflict.blocked
        assert conflict.verified_date == "2026-03-01"

    def test_large_change_is_blocked(self, verified_record):
        conflict = detect_conflict(change("capitalization", 6_000_000), verified_record)
        assert conflict.severity == "critical"
        assert should_block(conflict)
        data = conflict.to_dict()
        assert data["blocked"] is True
        assert data["notes"] == "Confirmed against SEC filing"

    def test_designation_flip_is_blocked(self, verified_record):
        assert detect_conflict(change("designation", "Flop"), verified_record).blocked

    def test_old_value_used_when_record_lacks_field(self, verified_record):
        del verified_record["capitalization"]
        conflict = detect_conflict(change("capitalization", 12_000_000, old_value=12_500_000), verified_record)
        assert conflict.verified_value == 12_500_000
        assert conflict.severity == "low"

    def test_should_block_none(self):
        assert not should_block(None)


class TestDescribe:

    def test_money(self):
        text = describe_discrepancy("capitalization", 12_500_000, 10_000_000)
        assert text == "verified $12.5M, proposed $10.0M (-20.0% change)"

    def test_thousands(self):
        assert "$750K" in describe_discrepancy("weeklyRunningCost", 700_000, 750_000)

    def test_percent_range(self):
        text = describe_discrepancy("estimatedRecoupmentPct", [40, 60], [60, 80])
        assert text == "verified 40-60%, proposed 60-80% (20pt difference)"

    def test_flip(self):
        assert describe_discrepancy("designation", "Windfall", "Flop") == "verified Windfall, proposed Flop"
