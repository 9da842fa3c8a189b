"""
Amp thread parser.

Amp writes one whole-file JSON document per thread (``T-<id>.json``).
Assistant messages carry a ``usage`` object with token counts and the
pay-as-you-go cost in cents (``credits``).
"""

import json
from typing import Any, Dict, Optional

from token_stats.core.day_range import DayRange, day_key_from_epoch_ms
from token_stats.core.pricing import PricingTable, usd_to_nanos
from token_stats.storage.models import PackedUsage
from .common import ParseResult, add_usage, as_float, as_int, normalize_model


def parse_amp_thread(
    data: bytes,
    day_range: DayRange,
    pricing: Optional[PricingTable] = None
) -> ParseResult:
    """Extract per-day, per-model usage from an Amp thread file.

    Day attribution uses the message's ``meta.sentAt`` when present and
    positive, otherwise the thread's ``created`` time; a message with
    neither is skipped. ``pricing`` is unused since Amp reports cost.

    Args:
        data: Raw file contents
        day_range: Resolved range; days outside the scan window are dropped

    Returns:
        ParseResult, empty when the document is not a thread
    """
    try:
        thread = json.loads(data)
    except (UnicodeDecodeError, ValueError):
        return ParseResult()
    if not isinstance(thread, dict):
        return ParseResult()

    thread_day_key = day_key_from_epoch_ms(as_float(thread.get("created")))

    messages = thread.get("messages")
    if not isinstance(messages, list):
        return ParseResult()

    days = {}
    for message in messages:
        if not isinstance(message, dict) or message.get("role") != "assistant":
            continue
        usage = message.get("usage")
        if not isinstance(usage, dict):
            continue
        model = usage.get("model")
        if not isinstance(model, str) or not model:
            continue

        input_tokens = as_int(usage.get("inputTokens"))
        output_tokens = as_int(usage.get("outputTokens"))
        cache_read = as_int(usage.get("cacheReadInputTokens"))
        cache_create = as_int(usage.get("cacheCreationInputTokens"))
        credits = as_float(usage.get("credits"))

        if not (input_tokens or output_tokens or cache_read or cache_create or credits):
            continue

        day_key = _message_day_key(message) or thread_day_key
        if day_key is None:
            continue

        add_usage(days, day_range, day_key, normalize_model(model), PackedUsage(
            input_tokens=input_tokens,
            cache_read_tokens=cache_read,
            cache_creation_tokens=cache_create,
            output_tokens=output_tokens,
            # credits are cents
            cost_nanos=usd_to_nanos(credits / 100.0),
        ))

    return ParseResult(days=days)


def _message_day_key(message: Dict[str, Any]) -> Optional[str]:
    meta = message.get("meta")
    if not isinstance(meta, dict):
        return None
    return day_key_from_epoch_ms(as_float(meta.get("sentAt")))

