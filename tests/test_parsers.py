"""
Tests for the provider log parsers.
"""

import json
from datetime import datetime, timezone

from token_stats.core.day_range import resolve_day_range
from token_stats.parsers import (
    normalize_model,
    parse_amp_thread,
    parse_claude_transcript,
    parse_codex_session,
)
from token_stats.parsers.codex import normalize_codex_model
from token_stats.parsers.common import as_float, as_int, iter_json_lines, parse_iso_timestamp
from token_stats.storage.models import CodexTotals, PackedUsage

ALL_TIME = resolve_day_range(now=datetime(2025, 1, 31, 12, 0), all_time=True)


def _ms(year, month, day, hour=12):
    """Local wall-clock time as epoch milliseconds."""
    return datetime(year, month, day, hour).timestamp() * 1000


def _iso(year, month, day, hour=12):
    """Local wall-clock time as a UTC ISO string, the way the tools log it."""
    moment = datetime(year, month, day, hour).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.123Z")


def _jsonl(*records) -> bytes:
    return "\n".join(json.dumps(r) for r in records).encode("utf-8")


class TestCommon:
    """Test shared parsing helpers."""

    def test_normalize_model_strips_date(self):
        assert normalize_model("claude-opus-4-5-20251101") == "claude-opus-4-5"
        assert normalize_model("gpt-5") == "gpt-5"

    def test_normalize_codex_model(self):
        assert normalize_codex_model("openai/gpt-5-codex") == "gpt-5-codex"

    def test_parse_iso_long_fraction(self):
        """Nanosecond fractions are truncated rather than rejected."""
        parsed = parse_iso_timestamp("2025-09-10T12:00:00.123456789Z")
        assert parsed == datetime(2025, 9, 10, 12, 0, 0, 123456, tzinfo=timezone.utc)

    def test_parse_iso_rejects_garbage(self):
        assert parse_iso_timestamp("yesterday") is None
        assert parse_iso_timestamp(12345) is None

    def test_numeric_coercion_ignores_negatives_and_non_finite(self):
        assert as_int(-5) == 0
        assert as_int(7) == 7
        assert as_int(3.9) == 3
        assert as_int(True) == 0
        assert as_float(float("inf")) == 0.0
        assert as_float(float("nan")) == 0.0
        assert as_float(-1.5) == 0.0
        assert as_float("12") == 0.0

    def test_iter_json_lines_skips_bad_lines(self):
        data = b'{"a": 1}\n\nnot json\n[1, 2]\n{"b": 2}'
        assert list(iter_json_lines(data)) == [(1, {"a": 1}), (5, {"b": 2})]


class TestAmpParser:
    """Test Amp thread parsing."""

    def _thread(self, messages, created=None):
        return json.dumps({
            "id": "T-123",
            "created": created if created is not None else _ms(2025, 1, 4),
            "messages": messages,
        }).encode("utf-8")

    def _message(self, sent_at=None, credits=2.5, model="claude-sonnet-4-5-20250929"):
        message = {
            "role": "assistant",
            "usage": {
                "model": model,
                "inputTokens": 100,
                "outputTokens": 50,
                "cacheReadInputTokens": 10,
                "cacheCreationInputTokens": 5,
                "credits": credits,
            },
        }
        if sent_at is not None:
            message["meta"] = {"sentAt": sent_at}
        return message

    def test_usage_and_credit_cost(self):
        """Credits are cents and become nanodollars."""
        result = parse_amp_thread(self._thread([self._message(sent_at=_ms(2025, 1, 5))]), ALL_TIME)

        assert result.days == {
            "2025-01-05": {"claude-sonnet-4-5": PackedUsage(100, 10, 5, 50, 25_000_000)},
        }

    def test_falls_back_to_thread_created(self):
        result = parse_amp_thread(self._thread([self._message()]), ALL_TIME)
        assert list(result.days) == ["2025-01-04"]

    def test_messages_sum_per_day(self):
        messages = [self._message(sent_at=_ms(2025, 1, 5, 9)), self._message(sent_at=_ms(2025, 1, 5, 18))]
        result = parse_amp_thread(self._thread(messages), ALL_TIME)
        assert result.days["2025-01-05"]["claude-sonnet-4-5"].input_tokens == 200

    def test_skips_user_and_empty_messages(self):
        messages = [
            {"role": "user", "usage": {"model": "x", "inputTokens": 10}},
            {"role": "assistant", "usage": {"model": "x"}},
            {"role": "assistant"},
        ]
        assert parse_amp_thread(self._thread(messages), ALL_TIME).days == {}

    def test_negative_token_counts_read_as_zero(self):
        message = {
            "role": "assistant",
            "meta": {"sentAt": _ms(2025, 1, 5)},
            "usage": {"model": "gpt-5", "inputTokens": -50, "outputTokens": 10},
        }

        result = parse_amp_thread(self._thread([message]), ALL_TIME)

        assert result.days == {"2025-01-05": {"gpt-5": PackedUsage(input_tokens=0, output_tokens=10)}}

    def test_non_finite_credits_only_void_that_message(self):
        """A NaN literal in one message leaves the rest of the thread intact."""
        good = {
            "role": "assistant",
            "meta": {"sentAt": _ms(2025, 1, 5)},
            "usage": {"model": "gpt-5", "inputTokens": 100, "outputTokens": 100, "credits": 1.0},
        }
        bad = {
            "role": "assistant",
            "meta": {"sentAt": _ms(2025, 1, 5)},
            "usage": {"model": "gpt-5", "inputTokens": 0, "outputTokens": 0, "credits": float("nan")},
        }
        data = self._thread([good, bad])
        assert b"NaN" in data

        result = parse_amp_thread(data, ALL_TIME)

        assert result.days == {
            "2025-01-05": {"gpt-5": PackedUsage(input_tokens=100, output_tokens=100, cost_nanos=10_000_000)},
        }

    def test_not_a_thread(self):
        assert parse_amp_thread(b"[]", ALL_TIME).days == {}
        assert parse_amp_thread(b"{broken", ALL_TIME).days == {}

    def test_days_outside_scan_window_dropped(self):
        day_range = resolve_day_range(since=datetime(2025, 1, 10), until=datetime(2025, 1, 20))
        messages = [self._message(sent_at=_ms(2025, 1, 5)), self._message(sent_at=_ms(2025, 1, 15))]
        result = parse_amp_thread(self._thread(messages), day_range)
        assert list(result.days) == ["2025-01-15"]


class TestClaudeParser:
    """Test Claude transcript parsing."""

    def _record(self, message_id="msg_1", request_id="req_1", model="claude-sonnet-4-5-20250929", day=5):
        return {
            "type": "assistant",
            "timestamp": _iso(2025, 1, day),
            "requestId": request_id,
            "message": {
                "id": message_id,
                "model": model,
                "usage": {
                    "input_tokens": 100,
                    "output_tokens": 20,
                    "cache_read_input_tokens": 1000,
                    "cache_creation_input_tokens": 0,
                },
            },
        }

    def test_usage_and_cost(self):
        result = parse_claude_transcript(_jsonl(self._record()), ALL_TIME)

        # 100*3 + 1000*0.3 + 20*15 = 900 USD per million tokens
        assert result.days == {
            "2025-01-05": {"claude-sonnet-4-5": PackedUsage(100, 1000, 0, 20, 900_000)},
        }
        assert result.last_model == "claude-sonnet-4-5"

    def test_streaming_duplicates_counted_once(self):
        data = _jsonl(self._record(), self._record(), self._record(message_id="msg_2"))
        result = parse_claude_transcript(data, ALL_TIME)
        assert result.days["2025-01-05"]["claude-sonnet-4-5"].input_tokens == 200

    def test_synthetic_and_user_records_skipped(self):
        data = _jsonl(
            self._record(model="<synthetic>"),
            {"type": "user", "timestamp": _iso(2025, 1, 5), "message": {"role": "user"}},
        )
        assert parse_claude_transcript(data, ALL_TIME).days == {}

    def test_unpriced_model_has_tokens_but_no_cost(self):
        result = parse_claude_transcript(_jsonl(self._record(model="claude-future-9")), ALL_TIME)
        usage = result.days["2025-01-05"]["claude-future-9"]
        assert usage.total_tokens == 1120
        assert usage.cost_nanos == 0

    def test_infinite_token_count_reads_as_zero(self):
        record = self._record()
        record["message"]["usage"]["input_tokens"] = float("inf")

        result = parse_claude_transcript(_jsonl(record), ALL_TIME)

        assert result.days["2025-01-05"]["claude-sonnet-4-5"] == PackedUsage(0, 1000, 0, 20, 600_000)

    def test_corrupt_lines_ignored(self):
        data = _jsonl(self._record()) + b"\n{truncated"
        assert "2025-01-05" in parse_claude_transcript(data, ALL_TIME).days


class TestCodexParser:
    """Test Codex session parsing."""

    def _token_count(self, day, input_tokens, cached, output, key="total_token_usage", timestamp=True):
        record = {
            "type": "event_msg",
            "payload": {
                "type": "token_count",
                "info": {key: {
                    "input_tokens": input_tokens,
                    "cached_input_tokens": cached,
                    "output_tokens": output,
                }},
            },
        }
        if timestamp:
            record["timestamp"] = _iso(2025, 1, day)
        return record

    def _meta(self, day=5):
        return {"type": "session_meta", "timestamp": _iso(2025, 1, day), "payload": {"timestamp": _iso(2025, 1, day)}}

    def test_cumulative_totals_become_deltas(self):
        data = _jsonl(
            self._meta(),
            {"type": "turn_context", "payload": {"model": "openai/gpt-5-codex"}},
            self._token_count(5, 1000, 400, 100),
            self._token_count(5, 1000, 400, 100),
            self._token_count(6, 1500, 400, 300),
        )
        result = parse_codex_session(data, ALL_TIME)

        # 600*1.25 + 400*0.125 + 100*10 = 1800 USD per million tokens
        assert result.days["2025-01-05"]["gpt-5-codex"] == PackedUsage(600, 400, 0, 100, 1_800_000)
        # 500*1.25 + 200*10 = 2625 USD per million tokens
        assert result.days["2025-01-06"]["gpt-5-codex"] == PackedUsage(500, 0, 0, 200, 2_625_000)
        assert result.last_model == "gpt-5-codex"
        assert result.last_totals == CodexTotals(input=1500, cached=400, output=300)

    def test_default_model(self):
        result = parse_codex_session(_jsonl(self._token_count(5, 10, 0, 5)), ALL_TIME)
        assert list(result.days["2025-01-05"]) == ["gpt-5"]

    def test_last_token_usage_fallback(self):
        """Per-turn usage is summed when cumulative totals are missing."""
        data = _jsonl(
            self._token_count(5, 100, 0, 10, key="last_token_usage"),
            self._token_count(5, 50, 0, 5, key="last_token_usage"),
        )
        result = parse_codex_session(data, ALL_TIME)
        assert result.days["2025-01-05"]["gpt-5"].input_tokens == 150
        assert result.last_totals == CodexTotals(input=150, cached=0, output=15)

    def test_session_timestamp_fallback(self):
        data = _jsonl(self._meta(day=3), self._token_count(5, 10, 0, 5, timestamp=False))
        assert list(parse_codex_session(data, ALL_TIME).days) == ["2025-01-03"]

    def test_decreasing_totals_clamped(self):
        """A totals reset never produces negative usage."""
        data = _jsonl(self._token_count(5, 100, 0, 10), self._token_count(5, 40, 0, 4))
        usage = parse_codex_session(data, ALL_TIME).days["2025-01-05"]["gpt-5"]
        assert usage.input_tokens == 100
        assert usage.output_tokens == 10
