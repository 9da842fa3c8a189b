"""
Daily usage report contracts.

These are the immutable outputs the scanner hands to the aggregator and
to any UI or CLI consumer.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class ModelBreakdown:
    """Cost (and, when known, tokens) attributed to one model."""
    model_name: str
    cost_usd: Optional[float]
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    cache_read_tokens: Optional[int] = None
    cache_creation_tokens: Optional[int] = None

    @property
    def has_tokens(self) -> bool:
        return None not in (
            self.input_tokens,
            self.output_tokens,
            self.cache_read_tokens,
            self.cache_creation_tokens,
        )

    @property
    def total_tokens(self) -> Optional[int]:
        if not self.has_tokens:
            return None
        return (self.input_tokens + self.output_tokens +
                self.cache_read_tokens + self.cache_creation_tokens)


@dataclass(frozen=True)
class DailyEntry:
    """Usage for one local calendar day."""
    date: str
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    cache_read_tokens: Optional[int] = None
    cache_creation_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    cost_usd: Optional[float] = None
    models_used: Optional[Tuple[str, ...]] = None
    model_breakdowns: Optional[Tuple[ModelBreakdown, ...]] = None

    def model_names(self) -> List[str]:
        """Every model named on this day.

        Breakdowns may be truncated to the top few by cost, so the union with
        ``models_used`` is returned.
        """
        names = set(self.models_used or ())
        names.update(b.model_name for b in self.model_breakdowns or ())
        return sorted(names)


@dataclass(frozen=True)
class DailySummary:
    """Totals across every entry of a report."""
    total_input_tokens: int
    total_output_tokens: int
    cache_read_tokens: int
    cache_creation_tokens: int
    total_tokens: int
    total_cost_usd: Optional[float]


@dataclass(frozen=True)
class CostUsageDailyReport:
    """Daily entries sorted ascending by date, plus an optional summary."""
    data: Tuple[DailyEntry, ...] = ()
    summary: Optional[DailySummary] = None

    @classmethod
    def empty(cls) -> "CostUsageDailyReport":
        return cls(data=(), summary=None)


def summarize_entries(entries: List[DailyEntry]) -> Optional[DailySummary]:
    """Sum a list of entries; None for an empty list.

    Cost is absent unless at least one entry reports cost.
    """
    if not entries:
        return None

    total_cost = 0.0
    cost_seen = False
    for entry in entries:
        if entry.cost_usd is not None:
            total_cost += entry.cost_usd
            cost_seen = True

    return DailySummary(
        total_input_tokens=sum(e.input_tokens or 0 for e in entries),
        total_output_tokens=sum(e.output_tokens or 0 for e in entries),
        cache_read_tokens=sum(e.cache_read_tokens or 0 for e in entries),
        cache_creation_tokens=sum(e.cache_creation_tokens or 0 for e in entries),
        total_tokens=sum(e.total_tokens or 0 for e in entries),
        total_cost_usd=total_cost if cost_seen else None,
    )
