"""
Data models for storage layer.

Defines the persisted cache entities and their JSON encoding.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

CACHE_VERSION = 1


@dataclass(frozen=True)
class PackedUsage:
    """Token and cost totals for one (day, model) pair.

    Serialized as the 5-integer array
    ``[input, cache_read, cache_creation, output, cost_nanos]`` so cache files
    stay compatible with the version 1 layout. Cost is kept in integer
    nanodollars so repeated apply/retract never drifts.
    """
    input_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    output_tokens: int = 0
    cost_nanos: int = 0

    @property
    def total_tokens(self) -> int:
        """All four token counts summed."""
        return (self.input_tokens + self.cache_read_tokens +
                self.cache_creation_tokens + self.output_tokens)

    @property
    def is_zero(self) -> bool:
        return self.total_tokens == 0 and self.cost_nanos == 0

    def __add__(self, other: "PackedUsage") -> "PackedUsage":
        return self.combined(other, 1)

    def combined(self, other: "PackedUsage", sign: int) -> "PackedUsage":
        """Add ``sign * other`` element-wise, clamping every field at zero."""
        return PackedUsage(
            input_tokens=max(0, self.input_tokens + sign * other.input_tokens),
            cache_read_tokens=max(0, self.cache_read_tokens + sign * other.cache_read_tokens),
            cache_creation_tokens=max(0, self.cache_creation_tokens + sign * other.cache_creation_tokens),
            output_tokens=max(0, self.output_tokens + sign * other.output_tokens),
            cost_nanos=max(0, self.cost_nanos + sign * other.cost_nanos),
        )

    def to_list(self) -> List[int]:
        return [
            self.input_tokens,
            self.cache_read_tokens,
            self.cache_creation_tokens,
            self.output_tokens,
            self.cost_nanos,
        ]

    @classmethod
    def from_list(cls, values: List[Any]) -> "PackedUsage":
        """Decode a packed array; missing trailing fields read as zero."""
        padded = [int(v) for v in values[:5]] + [0] * (5 - min(len(values), 5))
        return cls(*padded)


# dayKey -> model -> packed usage
DayModelUsage = Dict[str, Dict[str, PackedUsage]]


@dataclass(frozen=True)
class CodexTotals:
    """Last cumulative token totals seen in a Codex session file."""
    input: int
    cached: int
    output: int

    def to_dict(self) -> Dict[str, int]:
        return {"input": self.input, "cached": self.cached, "output": self.output}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodexTotals":
        return cls(
            input=int(data.get("input", 0)),
            cached=int(data.get("cached", 0)),
            output=int(data.get("output", 0)),
        )


@dataclass
class FileUsageRecord:
    """Contribution of one scanned source file.

    Replaced wholesale whenever the file's mtime or size changes; never
    partially re-parsed.
    """
    mtime_unix_ms: int
    size: int
    days: DayModelUsage = field(default_factory=dict)
    parsed_bytes: Optional[int] = None
    last_model: Optional[str] = None
    last_totals: Optional[CodexTotals] = None

    def matches(self, mtime_unix_ms: int, size: int) -> bool:
        return self.mtime_unix_ms == mtime_unix_ms and self.size == size


@dataclass
class Cache:
    """Persistent scan state for one (provider, all-time) pair.

    ``days`` is the denormalized sum of every ``files`` entry's ``days``.
    """
    version: int = CACHE_VERSION
    last_scan_unix_ms: int = 0
    files: Dict[str, FileUsageRecord] = field(default_factory=dict)
    days: DayModelUsage = field(default_factory=dict)
    roots: Optional[Dict[str, int]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Encode into the on-disk JSON shape."""
        files: Dict[str, Any] = {}
        for path, record in self.files.items():
            encoded: Dict[str, Any] = {
                "mtimeUnixMs": record.mtime_unix_ms,
                "size": record.size,
                "days": _encode_days(record.days),
            }
            if record.parsed_bytes is not None:
                encoded["parsedBytes"] = record.parsed_bytes
            if record.last_model is not None:
                encoded["lastModel"] = record.last_model
            if record.last_totals is not None:
                encoded["lastTotals"] = record.last_totals.to_dict()
            files[path] = encoded

        data: Dict[str, Any] = {
            "version": self.version,
            "lastScanUnixMs": self.last_scan_unix_ms,
            "files": files,
            "days": _encode_days(self.days),
        }
        if self.roots is not None:
            data["roots"] = dict(self.roots)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cache":
        """Decode the on-disk JSON shape.

        Raises:
            ValueError: If the structure is not a cache document
        """
        if not isinstance(data, dict):
            raise ValueError("cache document must be a JSON object")

        try:
            files = {}
            for path, raw in (data.get("files") or {}).items():
                totals = raw.get("lastTotals")
                files[path] = FileUsageRecord(
                    mtime_unix_ms=int(raw["mtimeUnixMs"]),
                    size=int(raw["size"]),
                    days=_decode_days(raw.get("days") or {}),
                    parsed_bytes=raw.get("parsedBytes"),
                    last_model=raw.get("lastModel"),
                    last_totals=CodexTotals.from_dict(totals) if totals else None,
                )
            roots = data.get("roots")
            return cls(
                version=int(data["version"]),
                last_scan_unix_ms=int(data.get("lastScanUnixMs", 0)),
                files=files,
                days=_decode_days(data.get("days") or {}),
                roots={k: int(v) for k, v in roots.items()} if roots else None,
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"malformed cache document: {e}") from e


def _encode_days(days: DayModelUsage) -> Dict[str, Dict[str, List[int]]]:
    return {
        day: {model: packed.to_list() for model, packed in models.items()}
        for day, models in days.items()
    }


def _decode_days(raw: Dict[str, Any]) -> DayModelUsage:
    return {
        day: {model: PackedUsage.from_list(values) for model, values in models.items()}
        for day, models in raw.items()
    }
