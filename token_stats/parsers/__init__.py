"""
Provider log parsers.

Each parser is a pure function ``(data, day_range, pricing) -> ParseResult``.
"""

from .amp import parse_amp_thread
from .claude import parse_claude_transcript
from .codex import parse_codex_session
from .common import ParseResult, normalize_model

__all__ = [
    "ParseResult",
    "normalize_model",
    "parse_amp_thread",
    "parse_claude_transcript",
    "parse_codex_session",
]
