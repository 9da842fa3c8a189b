"""
Helpers shared by the provider log parsers.
"""

import json
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, Optional, Tuple

from token_stats.core.day_range import DayRange, day_key_from_datetime
from token_stats.storage.models import CodexTotals, DayModelUsage, PackedUsage

DATE_SUFFIX_RE = re.compile(r"-\d{8}$")


def normalize_model(model: str) -> str:
    """Strip a trailing date version: ``claude-opus-4-5-20251101`` -> ``claude-opus-4-5``."""
    return DATE_SUFFIX_RE.sub("", model.strip())


def add_usage(
    days: DayModelUsage,
    day_range: DayRange,
    day_key: str,
    model: str,
    usage: PackedUsage
) -> None:
    """Accumulate ``usage`` under (day, model), ignoring days outside the scan window."""
    if not day_range.scan_contains(day_key):
        return
    day_models = days.setdefault(day_key, {})
    existing = day_models.get(model)
    day_models[model] = usage if existing is None else existing + usage


def parse_iso_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp such as ``2025-09-10T12:00:00.123Z``."""
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 only accepts 3 or 6 fractional digits
    match = re.match(r"^(.*T\d{2}:\d{2}:\d{2})\.(\d+)(.*)$", text)
    if match:
        head, frac, tail = match.groups()
        text = f"{head}.{frac[:6].ljust(6, '0')}{tail}"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def day_key_from_iso(value: Any) -> Optional[str]:
    moment = parse_iso_timestamp(value)
    return day_key_from_datetime(moment) if moment is not None else None


def as_int(value: Any) -> int:
    """Coerce a JSON count to a non-negative int; anything else counts as zero."""
    if isinstance(value, int) and not isinstance(value, bool):
        return max(0, value)
    return int(as_float(value))


def as_float(value: Any) -> float:
    """Coerce a JSON number to a non-negative float.

    Booleans, non-numbers and the NaN/Infinity literals json accepts all
    count as zero, so one bad field never fails the whole file.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if isinstance(value, int):
        return float(max(0, value))
    if not math.isfinite(value):
        return 0.0
    return max(0.0, value)


def iter_json_lines(data: bytes) -> Iterator[Tuple[int, Dict[str, Any]]]:
    """Yield ``(line_number, record)`` for every decodable JSON object line.

    Blank, undecodable and non-object lines are skipped.
    """
    for number, raw in enumerate(data.splitlines(), start=1):
        raw = raw.strip()
        if not raw:
            continue
        try:
            record = json.loads(raw)
        except (UnicodeDecodeError, ValueError):
            continue
        if isinstance(record, dict):
            yield number, record


@dataclass(frozen=True)
class ParseResult:
    """Per-day, per-model usage extracted from one file."""
    days: DayModelUsage = field(default_factory=dict)
    last_model: Optional[str] = None
    last_totals: Optional[CodexTotals] = None
