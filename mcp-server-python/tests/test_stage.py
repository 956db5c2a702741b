"""
Unit tests for the stage enum and helpers.
"""

import json

from models.stage import (
    INITIAL_STAGE,
    STAGE_ORDER,
    Stage,
    allowed_stage_values,
    empty_counters,
    parse_stage,
)


class TestStage:
    """Tests for Stage definitions."""

    def test_display_order(self):
        """Columns run applied -> interview -> offer -> hired -> rejected."""
        assert [s.value for s in STAGE_ORDER] == [
            "applied",
            "interview",
            "offer",
            "hired",
            "rejected",
        ]

    def test_initial_stage(self):
        """New jobs start in the first column."""
        assert INITIAL_STAGE is Stage.APPLIED
        assert INITIAL_STAGE is STAGE_ORDER[0]

    def test_stage_compares_to_string(self):
        """Members compare equal to their raw values and serialize as strings."""
        assert Stage.INTERVIEW == "interview"
        assert json.dumps({"status": Stage.HIRED}) == '{"status": "hired"}'

    def test_allowed_stage_values(self):
        assert allowed_stage_values() == "applied, interview, offer, hired, rejected"


class TestParseStage:
    """Tests for parse_stage."""

    def test_parse_known_values(self):
        for stage in STAGE_ORDER:
            assert parse_stage(stage.value) is stage
            assert parse_stage(stage) is stage

    def test_parse_unknown_values(self):
        """Unknown values give None instead of raising."""
        assert parse_stage("ghosted") is None
        assert parse_stage("") is None
        assert parse_stage(None) is None
        assert parse_stage(3) is None


class TestEmptyCounters:
    """Tests for empty_counters."""

    def test_all_zero_in_display_order(self):
        counters = empty_counters()
        assert list(counters) == [s.value for s in STAGE_ORDER]
        assert set(counters.values()) == {0}

    def test_returns_fresh_dict(self):
        first = empty_counters()
        first["applied"] = 7
        assert empty_counters()["applied"] == 0
