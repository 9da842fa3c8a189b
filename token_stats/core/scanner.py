"""
Incremental usage-log scanner.

Walks a provider's log roots, re-parses only files whose (mtime, size)
changed since the cached scan, retracts contributions of changed or
deleted files, and derives the daily report from the cache's day index.

A scan holds every mutation in memory and persists the cache once at the
end, so an interrupted scan leaves the previous cache untouched.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from token_stats.parsers import ParseResult
from token_stats.storage.cache import apply_file_contribution, load_cache, prune_days, save_cache
from token_stats.storage.models import Cache, FileUsageRecord
from .day_range import DayRange, resolve_day_range
from .pricing import DEFAULT_PRICING_TABLE, PricingTable
from .providers import Provider, ProviderSpec, get_provider_spec
from .report import CostUsageDailyReport, DailyEntry, ModelBreakdown, summarize_entries

logger = logging.getLogger(__name__)

TOP_MODEL_BREAKDOWNS = 3
NANOS_PER_USD = 1_000_000_000.0


@dataclass(frozen=True)
class ScanOptions:
    """Knobs for a daily-report load.

    ``refresh_min_interval_seconds`` lets callers rate-limit rescans: a cache
    scanned more recently than that is reported as-is.
    """
    all_time: bool = False
    force_rescan: bool = False
    cache_root: Optional[Union[str, Path]] = None
    refresh_min_interval_seconds: int = 0
    provider_roots: Dict[Provider, Sequence[Path]] = field(default_factory=dict)
    pricing: Optional[PricingTable] = None
    max_workers: int = 1


@dataclass
class MultiProviderResult:
    """Reports from a multi-provider load; failed providers land in ``errors``."""
    reports: Dict[Provider, CostUsageDailyReport] = field(default_factory=dict)
    errors: Dict[Provider, str] = field(default_factory=dict)


def load_daily_report(
    provider: Provider,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    now: Optional[datetime] = None,
    options: Optional[ScanOptions] = None
) -> CostUsageDailyReport:
    """Scan a provider's logs incrementally and return its daily report.

    Args:
        provider: Provider to scan
        since: First day to report (see ``resolve_day_range`` for defaults)
        until: Last day to report
        now: Reference time (defaults to the current local time)
        options: Scan options

    Returns:
        CostUsageDailyReport sorted ascending by date; empty when the
        provider's log root does not exist

    Raises:
        OSError: If the cache directory cannot be created or written
    """
    options = options or ScanOptions()
    now = now or datetime.now()
    day_range = resolve_day_range(since, until, now, options.all_time)

    if not options.force_rescan and options.refresh_min_interval_seconds > 0:
        cache = load_cache(provider.value, options.cache_root, day_range.is_all_time)
        age_ms = _to_unix_ms(now) - cache.last_scan_unix_ms
        if cache.last_scan_unix_ms > 0 and 0 <= age_ms < options.refresh_min_interval_seconds * 1000:
            logger.debug("Skipping %s rescan; last scan %d ms ago", provider.value, age_ms)
            return build_report_from_cache(cache, day_range)

    cache = scan_provider(provider, day_range, now, options)
    if cache is None:
        return CostUsageDailyReport.empty()
    return build_report_from_cache(cache, day_range)


def load_daily_reports(
    providers: Iterable[Provider],
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    now: Optional[datetime] = None,
    options: Optional[ScanOptions] = None
) -> MultiProviderResult:
    """Load several providers concurrently.

    Providers share no state, so each runs on its own worker. A failure is
    recorded for that provider alone.
    """
    providers = list(dict.fromkeys(providers))
    now = now or datetime.now()
    result = MultiProviderResult()
    if not providers:
        return result

    with ThreadPoolExecutor(max_workers=len(providers)) as pool:
        futures = {
            provider: pool.submit(load_daily_report, provider, since, until, now, options)
            for provider in providers
        }
        for provider, future in futures.items():
            try:
                result.reports[provider] = future.result()
            except Exception as e:
                logger.warning("Scan of %s failed: %s", provider.value, e)
                result.errors[provider] = str(e)
    return result


def scan_provider(
    provider: Provider,
    day_range: DayRange,
    now: datetime,
    options: ScanOptions
) -> Optional[Cache]:
    """Bring the provider's cache up to date with the files on disk.

    Returns:
        The updated (and saved) cache, or None when no log root exists
    """
    spec = get_provider_spec(provider)
    roots = [Path(r).expanduser() for r in options.provider_roots.get(provider) or spec.default_roots()]
    existing_roots = [r for r in roots if r.is_dir()]
    if not existing_roots:
        logger.info("No %s log root found among %s", provider.value, [str(r) for r in roots])
        return None

    if options.force_rescan:
        cache = Cache()
    else:
        cache = load_cache(provider.value, options.cache_root, day_range.is_all_time)

    seen = set()
    pending: List[Tuple[str, int, int]] = []
    for path in _enumerate_files(spec, existing_roots):
        try:
            stat = path.stat()
        except OSError as e:
            logger.debug("Cannot stat %s: %s", path, e)
            continue
        key = str(path)
        seen.add(key)
        mtime_ms = stat.st_mtime_ns // 1_000_000
        record = cache.files.get(key)
        if record is not None and record.matches(mtime_ms, stat.st_size):
            continue
        pending.append((key, mtime_ms, stat.st_size))

    pricing = options.pricing or DEFAULT_PRICING_TABLE
    parsed = _parse_all(spec, [p[0] for p in pending], day_range, pricing, options.max_workers)

    # single writer: apply results in enumeration order
    for (key, mtime_ms, size), result in zip(pending, parsed):
        old = cache.files.get(key)
        if old is not None:
            apply_file_contribution(cache, old.days, -1)
        record = FileUsageRecord(
            mtime_unix_ms=mtime_ms,
            size=size,
            days=result.days,
            parsed_bytes=size,
            last_model=result.last_model,
            last_totals=result.last_totals,
        )
        cache.files[key] = record
        apply_file_contribution(cache, record.days, 1)

    for key in [k for k in cache.files if k not in seen]:
        apply_file_contribution(cache, cache.files[key].days, -1)
        del cache.files[key]

    if not day_range.is_all_time:
        prune_days(cache, day_range.scan_since_key, day_range.scan_until_key)

    cache.roots = {str(r): r.stat().st_mtime_ns // 1_000_000 for r in existing_roots}
    cache.last_scan_unix_ms = _to_unix_ms(now)
    save_cache(provider.value, cache, options.cache_root, day_range.is_all_time)

    logger.debug(
        "Scanned %s: %d files tracked, %d re-parsed",
        provider.value, len(cache.files), len(pending),
    )
    return cache


def build_report_from_cache(cache: Cache, day_range: DayRange) -> CostUsageDailyReport:
    """Derive the public daily report from the cache's day index.

    Per-day model breakdowns keep the top three by cost; models without
    cost sort last and ties keep model-name order.
    """
    entries = []
    for day in sorted(d for d in cache.days if day_range.contains(d)):
        models = cache.days[day]
        model_names = sorted(models)

        breakdowns = []
        day_cost = 0.0
        day_cost_seen = False
        for model in model_names:
            packed = models[model]
            cost = packed.cost_nanos / NANOS_PER_USD if packed.cost_nanos > 0 else None
            breakdowns.append(ModelBreakdown(
                model_name=model,
                cost_usd=cost,
                input_tokens=packed.input_tokens,
                output_tokens=packed.output_tokens,
                cache_read_tokens=packed.cache_read_tokens,
                cache_creation_tokens=packed.cache_creation_tokens,
            ))
            if cost is not None:
                day_cost += cost
                day_cost_seen = True

        breakdowns.sort(key=lambda b: b.cost_usd if b.cost_usd is not None else -1.0, reverse=True)

        input_tokens = sum(p.input_tokens for p in models.values())
        output_tokens = sum(p.output_tokens for p in models.values())
        cache_read = sum(p.cache_read_tokens for p in models.values())
        cache_create = sum(p.cache_creation_tokens for p in models.values())

        entries.append(DailyEntry(
            date=day,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cache_read_tokens=cache_read,
            cache_creation_tokens=cache_create,
            total_tokens=input_tokens + output_tokens + cache_read + cache_create,
            cost_usd=day_cost if day_cost_seen else None,
            models_used=tuple(model_names),
            model_breakdowns=tuple(breakdowns[:TOP_MODEL_BREAKDOWNS]),
        ))

    return CostUsageDailyReport(data=tuple(entries), summary=summarize_entries(entries))


def _enumerate_files(spec: ProviderSpec, roots: List[Path]) -> List[Path]:
    files = []
    for root in roots:
        try:
            files.extend(spec.list_files(root))
        except OSError as e:
            logger.warning("Cannot list %s: %s", root, e)
    return files


def _parse_all(
    spec: ProviderSpec,
    paths: List[str],
    day_range: DayRange,
    pricing: PricingTable,
    max_workers: int
) -> List[ParseResult]:
    if max_workers <= 1 or len(paths) <= 1:
        return [_parse_file(spec, path, day_range, pricing) for path in paths]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(lambda p: _parse_file(spec, p, day_range, pricing), paths))


def _parse_file(spec: ProviderSpec, path: str, day_range: DayRange, pricing: PricingTable) -> ParseResult:
    """Parse one file; any failure makes the file contribute nothing."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        logger.warning("Cannot read %s: %s", path, e)
        return ParseResult()
    if not data:
        return ParseResult()
    try:
        return spec.parse(data, day_range, pricing)
    except Exception as e:
        logger.warning("Failed to parse %s: %s", path, e)
        return ParseResult()


def _to_unix_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)
