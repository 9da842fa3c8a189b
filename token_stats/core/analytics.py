"""
Derived usage analytics.

Spend projection, budget status, week-over-week comparison and weekday
statistics, all computed from day-level aggregated entries.
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from .aggregator import AggregatedEntry

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass(frozen=True)
class MonthProjection:
    """Projected end-of-month spend for the current month."""
    month_label: str
    current_spend: float
    projected_spend: float
    daily_average: float
    days_elapsed: int
    days_in_month: int
    month_progress: float


@dataclass(frozen=True)
class BudgetStatus:
    """Current and projected spend relative to a monthly budget."""
    monthly_budget: float
    spent_ratio: float
    projected_ratio: float
    will_exceed: bool


@dataclass(frozen=True)
class WeekStats:
    """Totals for one ISO week (Monday to Sunday)."""
    start: date
    end: date
    tokens: int
    cost: float
    active_days: int

    @property
    def is_empty(self) -> bool:
        return self.tokens == 0 and self.cost == 0 and self.active_days == 0


@dataclass(frozen=True)
class WeekComparison:
    current: WeekStats
    previous: WeekStats
    tokens_change_percent: Optional[float]
    cost_change_percent: Optional[float]


def calculate_projection(entries: Iterable[AggregatedEntry], today: Optional[date] = None) -> Optional[MonthProjection]:
    """Project this month's spend from day-level entries.

    The daily average is taken over days with usage, not calendar days,
    and extended over the days remaining in the month.

    Args:
        entries: Day-period aggregated entries
        today: Reference day (defaults to today)

    Returns:
        MonthProjection, or None when the current month has no entries
    """
    today = today or date.today()
    month_entries = [
        e for e in entries
        if e.period_start.year == today.year and e.period_start.month == today.month
    ]
    if not month_entries:
        return None

    current_spend = sum(e.cost_usd for e in month_entries if e.cost_usd is not None)
    days_in_month = calendar.monthrange(today.year, today.month)[1]
    daily_average = current_spend / len(month_entries)
    remaining_days = days_in_month - today.day

    return MonthProjection(
        month_label=f"{today:%B} {today.year}",
        current_spend=current_spend,
        projected_spend=current_spend + daily_average * remaining_days,
        daily_average=daily_average,
        days_elapsed=today.day,
        days_in_month=days_in_month,
        month_progress=today.day / days_in_month,
    )


def budget_status(projection: MonthProjection, monthly_budget: float) -> BudgetStatus:
    """Compare a projection against a monthly budget.

    Raises:
        ValueError: If the budget is not positive
    """
    if monthly_budget <= 0:
        raise ValueError("monthly budget must be > 0")
    return BudgetStatus(
        monthly_budget=monthly_budget,
        spent_ratio=projection.current_spend / monthly_budget,
        projected_ratio=projection.projected_spend / monthly_budget,
        will_exceed=projection.projected_spend >= monthly_budget,
    )


def week_stats(entries: Iterable[AggregatedEntry], week_start: date) -> WeekStats:
    week_end = week_start + timedelta(days=7)
    tokens = 0
    cost = 0.0
    active_days = 0
    for entry in entries:
        if week_start <= entry.period_start < week_end:
            tokens += entry.total_tokens
            cost += entry.cost_usd or 0.0
            active_days += 1
    return WeekStats(start=week_start, end=week_end, tokens=tokens, cost=cost, active_days=active_days)


def compare_weeks(entries: Iterable[AggregatedEntry], today: Optional[date] = None) -> WeekComparison:
    """This ISO week against the previous one."""
    today = today or date.today()
    entries = list(entries)
    this_monday = today - timedelta(days=today.weekday())
    current = week_stats(entries, this_monday)
    previous = week_stats(entries, this_monday - timedelta(days=7))
    return WeekComparison(
        current=current,
        previous=previous,
        tokens_change_percent=change_percent(current.tokens, previous.tokens),
        cost_change_percent=change_percent(current.cost, previous.cost),
    )


def change_percent(current: float, previous: float) -> Optional[float]:
    """Percent change; 100 when growing from zero, None when both are zero."""
    if previous <= 0:
        return 100.0 if current > 0 else None
    return (current - previous) / previous * 100


def weekday_totals(entries: Iterable[AggregatedEntry]) -> Dict[str, int]:
    """Tokens per weekday name, Monday first."""
    totals = {name: 0 for name in WEEKDAY_NAMES}
    for entry in entries:
        totals[WEEKDAY_NAMES[entry.period_start.weekday()]] += entry.total_tokens
    return totals


def busiest_weekday(entries: Iterable[AggregatedEntry]) -> Optional[Tuple[str, int]]:
    totals = weekday_totals(entries)
    name = max(WEEKDAY_NAMES, key=lambda n: totals[n])
    if totals[name] <= 0:
        return None
    return name, totals[name]


def weekend_ratio(entries: Iterable[AggregatedEntry]) -> Tuple[float, float, int]:
    """``(weekend_share, weekday_share, total_tokens)``; zeros when there is no usage."""
    weekend = 0
    weekday = 0
    for entry in entries:
        if entry.period_start.weekday() >= 5:
            weekend += entry.total_tokens
        else:
            weekday += entry.total_tokens
    total = weekend + weekday
    if total == 0:
        return 0.0, 0.0, 0
    return weekend / total, weekday / total, total


def favorite_model(entries: Iterable[AggregatedEntry]) -> Optional[Tuple[str, int]]:
    """Model used on the most buckets; ties go to the alphabetically first."""
    counts: Dict[str, int] = {}
    for entry in entries:
        for model in entry.models_used:
            counts[model] = counts.get(model, 0) + 1
    if not counts:
        return None
    ranked: List[Tuple[str, int]] = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return ranked[0]
