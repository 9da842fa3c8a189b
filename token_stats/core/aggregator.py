"""
Calendar-period aggregation of daily usage.

Folds daily entries into day, ISO-week, month, half-year and year buckets,
and derives model filters, model lists and per-model usage streaks. All
functions are pure.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .day_range import day_key_from_date, parse_day_key
from .report import DailyEntry, ModelBreakdown


class TimePeriod(Enum):
    """Aggregation granularity."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    HALF_YEAR = "halfYear"
    YEAR = "year"

    @property
    def display_name(self) -> str:
        return {
            TimePeriod.DAY: "Day",
            TimePeriod.WEEK: "Week",
            TimePeriod.MONTH: "Month",
            TimePeriod.HALF_YEAR: "6-Month",
            TimePeriod.YEAR: "Year",
        }[self]


@dataclass(frozen=True)
class AggregatedEntry:
    """One calendar bucket. ``id`` is the bucket key, never the label."""
    id: str
    period_label: str
    period_start: date
    period_end: date
    input_tokens: int
    output_tokens: int
    cache_read_tokens: int
    cache_creation_tokens: int
    total_tokens: int
    cost_usd: Optional[float]
    models_used: Tuple[str, ...]
    model_breakdowns: Tuple[ModelBreakdown, ...]


@dataclass(frozen=True)
class AggregatedReport:
    """Buckets sorted ascending by start, plus report-wide totals."""
    period: TimePeriod
    entries: Tuple[AggregatedEntry, ...]
    total_input_tokens: int
    total_output_tokens: int
    total_cache_read_tokens: int
    total_cache_creation_tokens: int
    total_tokens: int
    total_cost_usd: Optional[float]
    all_models: Tuple[str, ...]


@dataclass(frozen=True)
class ModelStreak:
    """Consecutive-day activity of one model."""
    model_name: str
    current_streak: int
    longest_streak: int
    last_active_date: Optional[str]


@dataclass(frozen=True)
class _PeriodRules:
    key: Callable[[date], str]
    bounds: Callable[[str], Tuple[date, date]]
    label: Callable[[str], str]


def aggregate(daily: Iterable[DailyEntry], period: TimePeriod) -> AggregatedReport:
    """Aggregate daily entries into calendar buckets.

    Bucket cost is the sum of contributing entries' costs, and stays absent
    when no entry in the bucket has cost. Only periods with at least one
    entry produce a bucket.
    """
    daily = list(daily)
    if period is TimePeriod.DAY:
        return _aggregate_by_day(daily)
    return _aggregate_by_period(daily, period, _RULES[period])


def filter_by_models(daily: Iterable[DailyEntry], models: Set[str]) -> List[DailyEntry]:
    """Restrict entries to the given models.

    Entries with no overlap are dropped. When an entry has per-model
    breakdowns, cost is recomputed from the kept breakdowns, and token
    totals too when every kept breakdown carries tokens. Entries without
    breakdowns pass through unchanged if they overlap (or list no models).
    The same pass-through applies when only a model missing from the
    truncated breakdowns matches.
    """
    daily = list(daily)
    if not models:
        return daily

    filtered_entries = []
    for entry in daily:
        breakdowns = entry.model_breakdowns
        if breakdowns is None:
            if entry.models_used and not any(m in models for m in entry.models_used):
                continue
            filtered_entries.append(entry)
            continue

        kept = tuple(b for b in breakdowns if b.model_name in models)
        if not kept:
            # breakdowns may be truncated; models_used still lists the rest
            if any(m in models for m in entry.models_used or ()):
                filtered_entries.append(entry)
            continue

        costs = [b.cost_usd for b in kept if b.cost_usd is not None]
        cost = sum(costs) if costs else None

        if all(b.has_tokens for b in kept):
            input_tokens = sum(b.input_tokens for b in kept)
            output_tokens = sum(b.output_tokens for b in kept)
            cache_read = sum(b.cache_read_tokens for b in kept)
            cache_create = sum(b.cache_creation_tokens for b in kept)
            total = input_tokens + output_tokens + cache_read + cache_create
        else:
            input_tokens = entry.input_tokens
            output_tokens = entry.output_tokens
            cache_read = entry.cache_read_tokens
            cache_create = entry.cache_creation_tokens
            total = entry.total_tokens

        filtered_entries.append(DailyEntry(
            date=entry.date,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cache_read_tokens=cache_read,
            cache_creation_tokens=cache_create,
            total_tokens=total,
            cost_usd=cost,
            models_used=tuple(b.model_name for b in kept),
            model_breakdowns=kept,
        ))
    return filtered_entries


def extract_all_models(daily: Iterable[DailyEntry]) -> List[str]:
    """Sorted union of every model named in the entries."""
    models: Set[str] = set()
    for entry in daily:
        models.update(entry.model_names())
    return sorted(models)


def calculate_streaks(daily: Iterable[DailyEntry], today: Optional[date] = None) -> List[ModelStreak]:
    """Per-model longest and current runs of consecutive active days.

    The current streak is the run ending today or yesterday; an older last
    active day means a current streak of 0. Sorted by current streak
    (descending), then model name.
    """
    today = today or date.today()
    yesterday = today - timedelta(days=1)

    model_days: Dict[str, Set[date]] = {}
    for entry in daily:
        day = parse_day_key(entry.date)
        if day is None:
            continue
        for model in entry.model_names():
            model_days.setdefault(model, set()).add(day)

    streaks = []
    for model, days in model_days.items():
        ordered = sorted(days)

        longest = 1
        run = 1
        for previous, current in zip(ordered, ordered[1:]):
            if current - previous == timedelta(days=1):
                run += 1
            else:
                run = 1
            longest = max(longest, run)

        last = ordered[-1]
        current_streak = 0
        if last in (today, yesterday):
            current_streak = 1
            for i in range(len(ordered) - 1, 0, -1):
                if ordered[i] - ordered[i - 1] != timedelta(days=1):
                    break
                current_streak += 1

        streaks.append(ModelStreak(
            model_name=model,
            current_streak=current_streak,
            longest_streak=longest,
            last_active_date=day_key_from_date(last),
        ))

    return sorted(streaks, key=lambda s: (-s.current_streak, s.model_name))


def combine_daily(reports: Iterable[Iterable[DailyEntry]]) -> List[DailyEntry]:
    """Merge entries from several providers into one entry per day.

    Breakdowns for the same model are summed; the merged day keeps every
    model's breakdown, sorted by cost descending.
    """
    grouped: Dict[str, List[DailyEntry]] = {}
    for entries in reports:
        for entry in entries:
            grouped.setdefault(entry.date, []).append(entry)

    merged = []
    for day in sorted(grouped):
        group = grouped[day]
        costs = [e.cost_usd for e in group if e.cost_usd is not None]
        models: Set[str] = set()
        breakdowns: Dict[str, ModelBreakdown] = {}
        has_breakdowns = False
        for entry in group:
            models.update(entry.model_names())
            for b in entry.model_breakdowns or ():
                has_breakdowns = True
                breakdowns[b.model_name] = _merge_breakdown(breakdowns.get(b.model_name), b)

        merged.append(DailyEntry(
            date=day,
            input_tokens=sum(e.input_tokens or 0 for e in group),
            output_tokens=sum(e.output_tokens or 0 for e in group),
            cache_read_tokens=sum(e.cache_read_tokens or 0 for e in group),
            cache_creation_tokens=sum(e.cache_creation_tokens or 0 for e in group),
            total_tokens=sum(_entry_total(e) for e in group),
            cost_usd=sum(costs) if costs else None,
            models_used=tuple(sorted(models)),
            model_breakdowns=tuple(_sort_breakdowns(breakdowns.values())) if has_breakdowns else None,
        ))
    return merged


def _merge_breakdown(existing: Optional[ModelBreakdown], other: ModelBreakdown) -> ModelBreakdown:
    if existing is None:
        return other
    if existing.cost_usd is None and other.cost_usd is None:
        cost = None
    else:
        cost = (existing.cost_usd or 0.0) + (other.cost_usd or 0.0)
    if existing.has_tokens and other.has_tokens:
        return ModelBreakdown(
            model_name=existing.model_name,
            cost_usd=cost,
            input_tokens=existing.input_tokens + other.input_tokens,
            output_tokens=existing.output_tokens + other.output_tokens,
            cache_read_tokens=existing.cache_read_tokens + other.cache_read_tokens,
            cache_creation_tokens=existing.cache_creation_tokens + other.cache_creation_tokens,
        )
    return ModelBreakdown(model_name=existing.model_name, cost_usd=cost)


def _sort_breakdowns(breakdowns: Iterable[ModelBreakdown]) -> List[ModelBreakdown]:
    return sorted(
        breakdowns,
        key=lambda b: (-(b.cost_usd if b.cost_usd is not None else -1.0), b.model_name),
    )


def _entry_total(entry: DailyEntry) -> int:
    if entry.total_tokens is not None:
        return entry.total_tokens
    return ((entry.input_tokens or 0) + (entry.output_tokens or 0) +
            (entry.cache_read_tokens or 0) + (entry.cache_creation_tokens or 0))


# Day passthrough

def _aggregate_by_day(daily: List[DailyEntry]) -> AggregatedReport:
    entries = []
    cost_total = 0.0
    cost_seen = False
    all_models: Set[str] = set()

    for entry in sorted(daily, key=lambda e: e.date):
        day = parse_day_key(entry.date)
        if day is None:
            continue
        models = entry.model_names()
        all_models.update(models)
        if entry.cost_usd is not None:
            cost_total += entry.cost_usd
            cost_seen = True

        entries.append(AggregatedEntry(
            id=entry.date,
            period_label=_short_date_label(day),
            period_start=day,
            period_end=day + timedelta(days=1),
            input_tokens=entry.input_tokens or 0,
            output_tokens=entry.output_tokens or 0,
            cache_read_tokens=entry.cache_read_tokens or 0,
            cache_creation_tokens=entry.cache_creation_tokens or 0,
            total_tokens=_entry_total(entry),
            cost_usd=entry.cost_usd,
            models_used=tuple(models),
            model_breakdowns=tuple(entry.model_breakdowns or ()),
        ))

    return _report(TimePeriod.DAY, entries, cost_total if cost_seen else None, all_models)


# Generic bucketing

def _aggregate_by_period(daily: List[DailyEntry], period: TimePeriod, rules: _PeriodRules) -> AggregatedReport:
    groups: Dict[str, List[DailyEntry]] = {}
    for entry in daily:
        day = parse_day_key(entry.date)
        if day is None:
            continue
        groups.setdefault(rules.key(day), []).append(entry)

    entries = []
    cost_total = 0.0
    cost_seen = False
    all_models: Set[str] = set()

    for key in sorted(groups):
        group = groups[key]
        start, end = rules.bounds(key)

        cost = 0.0
        has_cost = False
        models: Set[str] = set()
        breakdown_costs: Dict[str, float] = {}
        for entry in group:
            if entry.cost_usd is not None:
                cost += entry.cost_usd
                has_cost = True
            models.update(entry.model_names())
            for b in entry.model_breakdowns or ():
                if b.cost_usd is not None:
                    breakdown_costs[b.model_name] = breakdown_costs.get(b.model_name, 0.0) + b.cost_usd

        all_models.update(models)
        if has_cost:
            cost_total += cost
            cost_seen = True

        breakdowns = _sort_breakdowns(
            ModelBreakdown(model_name=name, cost_usd=value) for name, value in breakdown_costs.items()
        )

        entries.append(AggregatedEntry(
            id=key,
            period_label=rules.label(key),
            period_start=start,
            period_end=end,
            input_tokens=sum(e.input_tokens or 0 for e in group),
            output_tokens=sum(e.output_tokens or 0 for e in group),
            cache_read_tokens=sum(e.cache_read_tokens or 0 for e in group),
            cache_creation_tokens=sum(e.cache_creation_tokens or 0 for e in group),
            total_tokens=sum(_entry_total(e) for e in group),
            cost_usd=cost if has_cost else None,
            models_used=tuple(sorted(models)),
            model_breakdowns=tuple(breakdowns),
        ))

    return _report(period, entries, cost_total if cost_seen else None, all_models)


def _report(
    period: TimePeriod,
    entries: List[AggregatedEntry],
    total_cost: Optional[float],
    all_models: Set[str]
) -> AggregatedReport:
    return AggregatedReport(
        period=period,
        entries=tuple(entries),
        total_input_tokens=sum(e.input_tokens for e in entries),
        total_output_tokens=sum(e.output_tokens for e in entries),
        total_cache_read_tokens=sum(e.cache_read_tokens for e in entries),
        total_cache_creation_tokens=sum(e.cache_creation_tokens for e in entries),
        total_tokens=sum(e.total_tokens for e in entries),
        total_cost_usd=total_cost,
        all_models=tuple(sorted(all_models)),
    )


# Period keys, bounds and labels

def _week_key(day: date) -> str:
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year:04d}-W{iso_week:02d}"


def _week_bounds(key: str) -> Tuple[date, date]:
    year, week = key.split("-W")
    start = _iso_week_start(int(year), int(week))
    return start, start + timedelta(days=7)


def _week_label(key: str) -> str:
    return _short_date_label(_week_bounds(key)[0])


def _iso_week_start(iso_year: int, iso_week: int) -> date:
    # Jan 4th is always in ISO week 1
    jan4 = date(iso_year, 1, 4)
    week1_monday = jan4 - timedelta(days=jan4.isoweekday() - 1)
    return week1_monday + timedelta(weeks=iso_week - 1)


def _month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def _month_bounds(key: str) -> Tuple[date, date]:
    year, month = (int(p) for p in key.split("-"))
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def _month_label(key: str) -> str:
    start = _month_bounds(key)[0]
    return f"{start:%b} {start.year}"


def _half_year_key(day: date) -> str:
    return f"{day.year:04d}-H{1 if day.month <= 6 else 2}"


def _half_year_bounds(key: str) -> Tuple[date, date]:
    year, half = (int(p) for p in key.split("-H"))
    if half == 1:
        return date(year, 1, 1), date(year, 7, 1)
    return date(year, 7, 1), date(year + 1, 1, 1)


def _half_year_label(key: str) -> str:
    year, half = key.split("-H")
    return f"Jan-Jun {int(year)}" if half == "1" else f"Jul-Dec {int(year)}"


def _year_key(day: date) -> str:
    return f"{day.year:04d}"


def _year_bounds(key: str) -> Tuple[date, date]:
    year = int(key)
    return date(year, 1, 1), date(year + 1, 1, 1)


def _short_date_label(day: date) -> str:
    return f"{day:%b} {day.day}"


_RULES: Dict[TimePeriod, _PeriodRules] = {
    TimePeriod.WEEK: _PeriodRules(_week_key, _week_bounds, _week_label),
    TimePeriod.MONTH: _PeriodRules(_month_key, _month_bounds, _month_label),
    TimePeriod.HALF_YEAR: _PeriodRules(_half_year_key, _half_year_bounds, _half_year_label),
    TimePeriod.YEAR: _PeriodRules(_year_key, _year_bounds, lambda key: key),
}
