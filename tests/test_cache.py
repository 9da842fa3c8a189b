"""
Tests for the cache persistence layer.
"""

import json
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from token_stats.storage.cache import (
    apply_file_contribution,
    cache_file_path,
    default_cache_root,
    load_cache,
    prune_days,
    save_cache,
)
from token_stats.storage.models import Cache, CodexTotals, FileUsageRecord, PackedUsage


def _usage(tokens: int, cost: int = 0) -> PackedUsage:
    return PackedUsage(input_tokens=tokens, output_tokens=tokens, cost_nanos=cost)


class TestPackedUsage:
    """Test packed usage arithmetic and encoding."""

    def test_combined_clamps_at_zero(self):
        """Retracting more than is present never goes negative."""
        result = _usage(5, 10).combined(_usage(8, 30), -1)
        assert result == PackedUsage()
        assert result.is_zero

    def test_from_list_pads_short_arrays(self):
        assert PackedUsage.from_list([1, 2]) == PackedUsage(1, 2, 0, 0, 0)

    def test_list_order(self):
        """Encoding order is input, cache read, cache creation, output, cost."""
        assert PackedUsage(1, 2, 3, 4, 5).to_list() == [1, 2, 3, 4, 5]


class TestCacheDocument:
    """Test the JSON document shape."""

    def test_round_trip_keeps_optional_fields(self):
        cache = Cache(
            last_scan_unix_ms=42,
            files={"/logs/a.jsonl": FileUsageRecord(
                mtime_unix_ms=1000,
                size=12,
                days={"2025-01-05": {"gpt-5": _usage(3, 7)}},
                parsed_bytes=12,
                last_model="gpt-5",
                last_totals=CodexTotals(input=10, cached=4, output=2),
            )},
            days={"2025-01-05": {"gpt-5": _usage(3, 7)}},
            roots={"/logs": 999},
        )
        data = cache.to_dict()
        assert data["files"]["/logs/a.jsonl"]["mtimeUnixMs"] == 1000
        assert data["days"]["2025-01-05"]["gpt-5"] == [3, 0, 0, 3, 7]
        assert Cache.from_dict(data) == cache

    def test_malformed_document_raises(self):
        with pytest.raises(ValueError, match="malformed"):
            Cache.from_dict({"files": {}})


class TestCachePaths:
    """Test cache file naming."""

    def test_alltime_variant(self):
        root = Path("/tmp/cache-root")
        assert cache_file_path("codex", root) == root / "cost-usage" / "codex-v1.json"
        assert cache_file_path("codex", root, all_time=True) == root / "cost-usage" / "codex-v1-alltime.json"

    def test_default_root_honors_xdg(self):
        with patch.dict("os.environ", {"XDG_CACHE_HOME": "/tmp/xdg"}):
            assert default_cache_root() == Path("/tmp/xdg") / "token-stats"


class TestLoadSave:
    """Test loading and atomic saving."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_missing_file_is_empty_cache(self):
        cache = load_cache("amp", self.temp_dir)
        assert cache.files == {}
        assert cache.days == {}
        assert cache.last_scan_unix_ms == 0

    def test_save_then_load(self):
        cache = Cache(last_scan_unix_ms=5, days={"2025-01-05": {"m": _usage(1)}})
        path = save_cache("amp", cache, self.temp_dir)

        assert path.exists()
        assert load_cache("amp", self.temp_dir) == cache

    def test_save_leaves_no_temp_files(self):
        path = save_cache("amp", Cache(), self.temp_dir)
        assert [p.name for p in path.parent.iterdir()] == ["amp-v1.json"]

    def test_corrupt_file_is_cache_miss(self):
        """Garbage on disk loads as empty and is overwritten by the next save."""
        path = cache_file_path("claude", self.temp_dir)
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")

        assert load_cache("claude", self.temp_dir) == Cache()

        save_cache("claude", Cache(last_scan_unix_ms=1), self.temp_dir)
        assert json.loads(path.read_text(encoding="utf-8"))["lastScanUnixMs"] == 1

    def test_version_mismatch_is_cache_miss(self):
        path = cache_file_path("claude", self.temp_dir)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"version": 99, "files": {}, "days": {}}), encoding="utf-8")

        assert load_cache("claude", self.temp_dir) == Cache()

    def test_failed_write_keeps_previous_cache(self):
        """An interrupted save never replaces the existing file."""
        save_cache("amp", Cache(last_scan_unix_ms=1), self.temp_dir)

        with patch("token_stats.storage.cache.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError, match="disk full"):
                save_cache("amp", Cache(last_scan_unix_ms=2), self.temp_dir)

        assert load_cache("amp", self.temp_dir).last_scan_unix_ms == 1
        path = cache_file_path("amp", self.temp_dir)
        assert [p.name for p in path.parent.iterdir()] == ["amp-v1.json"]


class TestApplyFileContribution:
    """Test incremental add and retract of file contributions."""

    def test_apply_then_retract_restores_empty(self):
        cache = Cache()
        file_days = {"2025-01-05": {"a": _usage(3, 10), "b": _usage(1)}}

        apply_file_contribution(cache, file_days, 1)
        assert cache.days["2025-01-05"]["a"] == _usage(3, 10)

        apply_file_contribution(cache, file_days, -1)
        assert cache.days == {}

    def test_contributions_sum(self):
        cache = Cache()
        apply_file_contribution(cache, {"2025-01-05": {"a": _usage(3)}}, 1)
        apply_file_contribution(cache, {"2025-01-05": {"a": _usage(4)}}, 1)
        assert cache.days["2025-01-05"]["a"] == _usage(7)

    def test_negative_counts_clamped_on_first_apply(self):
        """A new (day, model) entry never stores negative counts."""
        cache = Cache()
        apply_file_contribution(cache, {"2025-01-05": {"a": PackedUsage(input_tokens=-50, output_tokens=10)}}, 1)
        assert cache.days["2025-01-05"]["a"] == PackedUsage(input_tokens=0, output_tokens=10)

    def test_retract_absent_entry_is_noop(self):
        cache = Cache(days={"2025-01-05": {"a": _usage(3)}})
        apply_file_contribution(cache, {"2025-01-06": {"a": _usage(3)}}, -1)
        assert cache.days == {"2025-01-05": {"a": _usage(3)}}

    def test_invalid_sign(self):
        with pytest.raises(ValueError, match="sign"):
            apply_file_contribution(Cache(), {}, 2)


class TestPruneDays:
    """Test pruning outside the scan window."""

    def test_prunes_index_and_records(self):
        """Both the day index and file records lose out-of-window days."""
        days = {"2025-01-01": {"a": _usage(1)}, "2025-01-10": {"a": _usage(2)}}
        cache = Cache(
            files={"f": FileUsageRecord(mtime_unix_ms=1, size=1, days={k: dict(v) for k, v in days.items()})},
            days={k: dict(v) for k, v in days.items()},
        )

        prune_days(cache, "2025-01-05", "2025-01-31")

        assert list(cache.days) == ["2025-01-10"]
        assert list(cache.files["f"].days) == ["2025-01-10"]

        # retracting the pruned record leaves nothing behind
        apply_file_contribution(cache, cache.files["f"].days, -1)
        assert cache.days == {}
