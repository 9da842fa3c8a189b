"""
Tests for derived usage analytics.
"""

from datetime import date

import pytest

from token_stats.core.aggregator import TimePeriod, aggregate
from token_stats.core.analytics import (
    budget_status,
    busiest_weekday,
    calculate_projection,
    change_percent,
    compare_weeks,
    favorite_model,
    weekday_totals,
    weekend_ratio,
)
from token_stats.core.report import DailyEntry


def _days(*specs):
    """Day-period entries from ``(day, tokens, cost, models)`` tuples."""
    daily = [
        DailyEntry(date=day, input_tokens=tokens, total_tokens=tokens, cost_usd=cost, models_used=models)
        for day, tokens, cost, models in specs
    ]
    return aggregate(daily, TimePeriod.DAY).entries


class TestProjection:
    """Test month-end spend projection."""

    def test_projection_uses_usage_days(self):
        """The average is over days with usage, not calendar days."""
        entries = _days(
            ("2024-12-31", 10, 100.0, ("a",)),
            ("2025-01-02", 10, 2.0, ("a",)),
            ("2025-01-05", 10, 4.0, ("a",)),
        )

        result = calculate_projection(entries, today=date(2025, 1, 10))

        assert result.month_label == "January 2025"
        assert result.current_spend == 6.0
        assert result.daily_average == 3.0
        # 6 + 3 * 21 remaining days
        assert result.projected_spend == 69.0
        assert result.days_elapsed == 10
        assert result.days_in_month == 31

    def test_no_entries_this_month(self):
        entries = _days(("2024-12-31", 10, 1.0, ("a",)))
        assert calculate_projection(entries, today=date(2025, 1, 10)) is None

    def test_budget_status(self):
        entries = _days(("2025-01-02", 10, 2.0, ("a",)), ("2025-01-05", 10, 4.0, ("a",)))
        projection = calculate_projection(entries, today=date(2025, 1, 10))

        status = budget_status(projection, 50.0)

        assert status.spent_ratio == pytest.approx(0.12)
        assert status.projected_ratio == pytest.approx(1.38)
        assert status.will_exceed

    def test_budget_must_be_positive(self):
        entries = _days(("2025-01-02", 10, 2.0, ("a",)))
        projection = calculate_projection(entries, today=date(2025, 1, 10))
        with pytest.raises(ValueError, match="must be > 0"):
            budget_status(projection, 0)


class TestWeekComparison:
    """Test this-week versus last-week statistics."""

    def test_compare_weeks(self):
        entries = _days(("2025-01-07", 100, 1.0, ("a",)), ("2025-01-14", 300, 2.0, ("a",)))

        result = compare_weeks(entries, today=date(2025, 1, 15))

        assert result.current.start == date(2025, 1, 13)
        assert result.previous.start == date(2025, 1, 6)
        assert result.current.tokens == 300
        assert result.previous.active_days == 1
        assert result.tokens_change_percent == pytest.approx(200.0)
        assert result.cost_change_percent == pytest.approx(100.0)

    def test_change_percent_from_zero(self):
        assert change_percent(5, 0) == 100.0
        assert change_percent(0, 0) is None
        assert change_percent(50, 100) == -50.0


class TestWeekdayStats:
    """Test weekday and weekend breakdowns."""

    def setup_method(self):
        # 2025-01-13 is a Monday, 2025-01-18 a Saturday
        self.entries = _days(
            ("2025-01-13", 100, None, ("a",)),
            ("2025-01-14", 0, None, ("b",)),
            ("2025-01-18", 300, None, ("b",)),
            ("2025-01-20", 0, None, ("a",)),
        )

    def test_weekday_totals(self):
        totals = weekday_totals(self.entries)
        assert totals["Monday"] == 100
        assert totals["Saturday"] == 300
        assert list(totals)[0] == "Monday"

    def test_busiest_weekday(self):
        assert busiest_weekday(self.entries) == ("Saturday", 300)
        assert busiest_weekday([]) is None

    def test_weekend_ratio(self):
        assert weekend_ratio(self.entries) == (0.75, 0.25, 400)
        assert weekend_ratio([]) == (0.0, 0.0, 0)

    def test_favorite_model_tie_is_alphabetical(self):
        assert favorite_model(self.entries) == ("a", 2)
        assert favorite_model([]) is None
