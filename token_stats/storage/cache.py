"""
Incremental cache persistence.

Loads, saves and mutates the per-provider scan cache. Loading never fails:
any unreadable, corrupt or version-mismatched file is a cache miss.
Saving writes a temp file in the target directory and atomically replaces
the previous cache.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from token_stats.core.day_range import is_in_range
from .models import CACHE_VERSION, Cache, DayModelUsage, FileUsageRecord, PackedUsage

logger = logging.getLogger(__name__)

CACHE_SUBDIR = "cost-usage"


def default_cache_root() -> Path:
    """Per-user cache directory for token-stats."""
    xdg = os.environ.get("XDG_CACHE_HOME")
    base = Path(xdg) if xdg else Path.home() / ".cache"
    return base / "token-stats"


def cache_file_path(
    provider: str,
    cache_root: Optional[Union[str, Path]] = None,
    all_time: bool = False
) -> Path:
    """Location of the cache file for a provider and mode.

    Args:
        provider: Provider identifier (e.g. ``"amp"``)
        cache_root: Override for the cache root directory
        all_time: Whether this is the never-pruned all-time variant

    Returns:
        ``<root>/cost-usage/<provider>-v1[-alltime].json``
    """
    root = Path(cache_root) if cache_root is not None else default_cache_root()
    suffix = "-alltime" if all_time else ""
    return root / CACHE_SUBDIR / f"{provider}-v{CACHE_VERSION}{suffix}.json"


def load_cache(
    provider: str,
    cache_root: Optional[Union[str, Path]] = None,
    all_time: bool = False
) -> Cache:
    """Load the cache for a provider, or an empty cache on any problem."""
    path = cache_file_path(provider, cache_root, all_time)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Cache()
    except OSError as e:
        logger.warning("Cannot read cache %s: %s", path, e)
        return Cache()

    try:
        cache = Cache.from_dict(json.loads(raw))
    except ValueError as e:
        # json.JSONDecodeError is a ValueError too
        logger.warning("Discarding corrupt cache %s: %s", path, e)
        return Cache()

    if cache.version != CACHE_VERSION:
        logger.info("Discarding cache %s with version %s", path, cache.version)
        return Cache()
    return cache


def save_cache(
    provider: str,
    cache: Cache,
    cache_root: Optional[Union[str, Path]] = None,
    all_time: bool = False
) -> Path:
    """Atomically persist the cache.

    The previous cache file is only replaced once the new content is fully
    written, so an interrupted save leaves the old cache intact.

    Returns:
        Path of the written cache file

    Raises:
        OSError: If the directory cannot be created or the write fails
    """
    path = cache_file_path(provider, cache_root, all_time)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(cache.to_dict(), sort_keys=True, separators=(",", ":"))
    fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
    return path


def apply_file_contribution(cache: Cache, file_days: DayModelUsage, sign: int) -> None:
    """Add (sign=+1) or retract (sign=-1) a file's days into ``cache.days``.

    Fields are clamped at zero; model entries that reach all-zero and days
    left without models are removed.
    """
    if sign not in (1, -1):
        raise ValueError("sign must be +1 or -1")

    for day, models in file_days.items():
        day_models = cache.days.get(day, {})
        for model, packed in models.items():
            existing = day_models.get(model)
            if existing is None:
                if sign < 0:
                    continue
                merged = PackedUsage().combined(packed, 1)
            else:
                merged = existing.combined(packed, sign)
            if merged.is_zero:
                day_models.pop(model, None)
            else:
                day_models[model] = merged
        if day_models:
            cache.days[day] = day_models
        else:
            cache.days.pop(day, None)


def prune_days(cache: Cache, since_key: str, until_key: str) -> None:
    """Drop days outside ``[since_key, until_key]``.

    Applied to the day index and to every file record alike, so a later
    retraction of a pruned file never subtracts days that are gone.
    """
    for day in [d for d in cache.days if not is_in_range(d, since_key, until_key)]:
        del cache.days[day]
    for record in cache.files.values():
        _prune_record(record, since_key, until_key)


def _prune_record(record: FileUsageRecord, since_key: str, until_key: str) -> None:
    for day in [d for d in record.days if not is_in_range(d, since_key, until_key)]:
        del record.days[day]
