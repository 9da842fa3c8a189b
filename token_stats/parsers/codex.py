"""
Codex session rollout parser.

Codex appends JSON records to ``rollout-*.jsonl`` files. ``token_count``
events report cumulative session totals, so each event's usage is the
difference from the previous total seen in the same file. Repeated events
with unchanged totals therefore contribute nothing.
"""

from typing import Any, Dict, Optional

from token_stats.core.day_range import DayRange
from token_stats.core.pricing import DEFAULT_PRICING_TABLE, PricingTable, cost_nanos
from token_stats.storage.models import CodexTotals, PackedUsage
from .common import ParseResult, add_usage, as_int, day_key_from_iso, iter_json_lines, normalize_model

DEFAULT_CODEX_MODEL = "gpt-5"


def normalize_codex_model(model: str) -> str:
    model = model.strip()
    if model.startswith("openai/"):
        model = model[len("openai/"):]
    return normalize_model(model)


def parse_codex_session(
    data: bytes,
    day_range: DayRange,
    pricing: Optional[PricingTable] = None
) -> ParseResult:
    """Extract per-day, per-model usage from a Codex session file.

    Day attribution uses the event's own ``timestamp`` and falls back to the
    session start from ``session_meta``.

    Returns:
        ParseResult including the last model and cumulative totals seen
    """
    pricing = pricing or DEFAULT_PRICING_TABLE
    days = {}
    model = DEFAULT_CODEX_MODEL
    session_day_key = None
    previous: Optional[CodexTotals] = None

    for _, record in iter_json_lines(data):
        payload = record.get("payload")
        if not isinstance(payload, dict):
            continue
        record_type = record.get("type")

        if record_type == "session_meta":
            session_day_key = day_key_from_iso(payload.get("timestamp")) or session_day_key
            continue

        if record_type == "turn_context":
            if isinstance(payload.get("model"), str) and payload["model"]:
                model = normalize_codex_model(payload["model"])
            continue

        if record_type != "event_msg" or payload.get("type") != "token_count":
            continue
        info = payload.get("info")
        if not isinstance(info, dict):
            continue

        total = info.get("total_token_usage")
        last = info.get("last_token_usage")
        if isinstance(total, dict):
            current = _totals(total)
            delta = _delta(current, previous)
        elif isinstance(last, dict):
            delta = _totals(last)
            base = previous or CodexTotals(0, 0, 0)
            current = CodexTotals(
                input=base.input + delta.input,
                cached=base.cached + delta.cached,
                output=base.output + delta.output,
            )
        else:
            continue
        previous = current

        if not (delta.input or delta.cached or delta.output):
            continue

        day_key = day_key_from_iso(record.get("timestamp")) or session_day_key
        if day_key is None:
            continue

        # input_tokens already includes the cached part
        cached = min(delta.cached, delta.input)
        uncached = delta.input - cached
        add_usage(days, day_range, day_key, model, PackedUsage(
            input_tokens=uncached,
            cache_read_tokens=cached,
            cache_creation_tokens=0,
            output_tokens=delta.output,
            cost_nanos=cost_nanos(pricing, model, uncached, cached, 0, delta.output),
        ))

    return ParseResult(days=days, last_model=model, last_totals=previous)


def _totals(raw: Dict[str, Any]) -> CodexTotals:
    return CodexTotals(
        input=as_int(raw.get("input_tokens")),
        cached=as_int(raw.get("cached_input_tokens")),
        output=as_int(raw.get("output_tokens")),
    )


def _delta(current: CodexTotals, previous: Optional[CodexTotals]) -> CodexTotals:
    if previous is None:
        return current
    return CodexTotals(
        input=max(0, current.input - previous.input),
        cached=max(0, current.cached - previous.cached),
        output=max(0, current.output - previous.output),
    )
