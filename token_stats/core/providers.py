"""
Provider strategy table.

Maps each supported provider to where its logs live, how its files are
enumerated and which parser reads them.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from token_stats.parsers import (
    ParseResult,
    parse_amp_thread,
    parse_claude_transcript,
    parse_codex_session,
)
from .day_range import DayRange
from .pricing import PricingTable


class Provider(Enum):
    """Supported coding assistants."""
    AMP = "amp"
    CLAUDE = "claude"
    CODEX = "codex"

    @property
    def display_name(self) -> str:
        return {
            Provider.AMP: "Amp",
            Provider.CLAUDE: "Claude",
            Provider.CODEX: "Codex",
        }[self]


Parser = Callable[[bytes, DayRange, Optional[PricingTable]], ParseResult]


@dataclass(frozen=True)
class ProviderSpec:
    """How to find and read one provider's session logs."""
    default_roots: Callable[[], List[Path]]
    list_files: Callable[[Path], List[Path]]
    parse: Parser


def _amp_roots() -> List[Path]:
    return [Path.home() / ".local" / "share" / "amp" / "threads"]


def _claude_roots() -> List[Path]:
    home = Path.home()
    return [home / ".claude" / "projects", home / ".config" / "claude" / "projects"]


def _codex_roots() -> List[Path]:
    codex_home = os.environ.get("CODEX_HOME")
    base = Path(codex_home) if codex_home else Path.home() / ".codex"
    return [base / "sessions"]


def _list_amp_threads(root: Path) -> List[Path]:
    return sorted(
        p for p in root.iterdir()
        if p.is_file() and p.name.startswith("T-") and p.name.endswith(".json")
    )


def _list_jsonl(root: Path) -> List[Path]:
    return sorted(p for p in root.rglob("*.jsonl") if p.is_file())


PROVIDER_SPECS: Dict[Provider, ProviderSpec] = {
    Provider.AMP: ProviderSpec(
        default_roots=_amp_roots,
        list_files=_list_amp_threads,
        parse=parse_amp_thread,
    ),
    Provider.CLAUDE: ProviderSpec(
        default_roots=_claude_roots,
        list_files=_list_jsonl,
        parse=parse_claude_transcript,
    ),
    Provider.CODEX: ProviderSpec(
        default_roots=_codex_roots,
        list_files=_list_jsonl,
        parse=parse_codex_session,
    ),
}


def get_provider_spec(provider: Provider) -> ProviderSpec:
    return PROVIDER_SPECS[provider]


def parse_provider(value: str) -> Provider:
    """Look up a provider by its identifier.

    Raises:
        ValueError: If the provider is not supported
    """
    try:
        return Provider(value.strip().lower())
    except ValueError:
        valid = [p.value for p in Provider]
        raise ValueError(f"Unsupported provider: {value} (expected one of: {valid})")
