"""
Day-key range resolution.

Day keys are ``YYYY-MM-DD`` strings in the local time zone. Because that
format sorts lexicographically in chronological order, range checks are
plain string comparisons.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

# Bounds that compare below/above every valid day key
MIN_DAY_KEY = "0000-01-01"
MAX_DAY_KEY = "9999-12-31"

DEFAULT_WINDOW_DAYS = 30


@dataclass(frozen=True)
class DayRange:
    """Resolved report and scan bounds.

    ``since_key``/``until_key`` bound what callers get back.
    ``scan_since_key``/``scan_until_key`` bound what the scanner may keep;
    they are one day wider on each side so usage near midnight is not lost
    when the window rolls.
    """
    since_key: str
    until_key: str
    scan_since_key: str
    scan_until_key: str
    is_all_time: bool = False

    def contains(self, day_key: str) -> bool:
        return is_in_range(day_key, self.since_key, self.until_key)

    def scan_contains(self, day_key: str) -> bool:
        return is_in_range(day_key, self.scan_since_key, self.scan_until_key)

    @property
    def is_empty(self) -> bool:
        return self.since_key > self.until_key


def is_in_range(day_key: str, since: str, until: str) -> bool:
    """Inclusive lexicographic range check. ``since > until`` is simply empty."""
    return since <= day_key <= until


def day_key_from_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def day_key_from_datetime(value: datetime) -> str:
    """Local calendar day of ``value``.

    Aware datetimes are converted into the local zone first; naive ones are
    taken as already local. Plain dates pass through.
    """
    if not isinstance(value, datetime):
        return day_key_from_date(value)
    if value.tzinfo is not None:
        value = value.astimezone()
    return day_key_from_date(value.date())


def day_key_from_epoch_ms(ms: float) -> Optional[str]:
    """Local day key for an epoch-milliseconds timestamp, None when not positive."""
    if not ms or ms <= 0:
        return None
    try:
        moment = datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return day_key_from_datetime(moment)


def parse_day_key(day_key: str) -> Optional[date]:
    """Parse ``YYYY-MM-DD``; None for anything else."""
    try:
        return datetime.strptime(day_key, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return None


def resolve_day_range(
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    now: Optional[datetime] = None,
    all_time: bool = False
) -> DayRange:
    """Turn a query into concrete day-key bounds.

    Args:
        since: First day of interest. Defaults to 30 days back from ``now``,
            or unbounded in all-time mode.
        until: Last day of interest. Defaults to ``now``, or unbounded in
            all-time mode.
        now: Reference time (defaults to the current local time)
        all_time: Never restrict the scan window

    Returns:
        DayRange; an inverted request gives an empty but valid range
    """
    now = now or datetime.now()

    if since is None:
        since_key = MIN_DAY_KEY if all_time else day_key_from_datetime(
            now - timedelta(days=DEFAULT_WINDOW_DAYS - 1))
    else:
        since_key = day_key_from_datetime(since)

    if until is None:
        until_key = MAX_DAY_KEY if all_time else day_key_from_datetime(now)
    else:
        until_key = day_key_from_datetime(until)

    if all_time:
        return DayRange(
            since_key=since_key,
            until_key=until_key,
            scan_since_key=MIN_DAY_KEY,
            scan_until_key=MAX_DAY_KEY,
            is_all_time=True,
        )

    return DayRange(
        since_key=since_key,
        until_key=until_key,
        scan_since_key=_shift_key(since_key, -1),
        scan_until_key=_shift_key(until_key, 1),
        is_all_time=False,
    )


def _shift_key(day_key: str, days: int) -> str:
    parsed = parse_day_key(day_key)
    if parsed is None:
        return day_key
    try:
        return day_key_from_date(parsed + timedelta(days=days))
    except OverflowError:
        return day_key
