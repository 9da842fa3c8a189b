"""
Claude transcript parser.

Claude writes one JSON object per line. Streaming responses repeat the same
assistant message several times with identical usage; only the first
record for a ``(message.id, requestId)`` pair is counted.
"""

from typing import Optional, Set, Tuple

from token_stats.core.day_range import DayRange
from token_stats.core.pricing import DEFAULT_PRICING_TABLE, PricingTable, cost_nanos
from token_stats.storage.models import PackedUsage
from .common import ParseResult, add_usage, as_int, day_key_from_iso, iter_json_lines, normalize_model

SYNTHETIC_MODEL = "<synthetic>"


def parse_claude_transcript(
    data: bytes,
    day_range: DayRange,
    pricing: Optional[PricingTable] = None
) -> ParseResult:
    """Extract per-day, per-model usage from a Claude ``.jsonl`` transcript."""
    pricing = pricing or DEFAULT_PRICING_TABLE
    days = {}
    seen: Set[Tuple[str, str]] = set()
    last_model = None

    for _, record in iter_json_lines(data):
        if record.get("type") != "assistant":
            continue
        message = record.get("message")
        if not isinstance(message, dict):
            continue
        usage = message.get("usage")
        if not isinstance(usage, dict):
            continue
        model = message.get("model")
        if not isinstance(model, str) or not model or model == SYNTHETIC_MODEL:
            continue

        message_id = message.get("id")
        request_id = record.get("requestId")
        if isinstance(message_id, str) and isinstance(request_id, str):
            key = (message_id, request_id)
            if key in seen:
                continue
            seen.add(key)

        day_key = day_key_from_iso(record.get("timestamp"))
        if day_key is None:
            continue

        input_tokens = as_int(usage.get("input_tokens"))
        cache_read = as_int(usage.get("cache_read_input_tokens"))
        cache_create = as_int(usage.get("cache_creation_input_tokens"))
        output_tokens = as_int(usage.get("output_tokens"))
        if not (input_tokens or cache_read or cache_create or output_tokens):
            continue

        model = normalize_model(model)
        last_model = model
        add_usage(days, day_range, day_key, model, PackedUsage(
            input_tokens=input_tokens,
            cache_read_tokens=cache_read,
            cache_creation_tokens=cache_create,
            output_tokens=output_tokens,
            cost_nanos=cost_nanos(pricing, model, input_tokens, cache_read, cache_create, output_tokens),
        ))

    return ParseResult(days=days, last_model=last_model)
