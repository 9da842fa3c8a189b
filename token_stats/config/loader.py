"""
Configuration management and loading.

Reads the optional YAML settings file that tunes scanning, pricing and
budgets.
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from token_stats.core.pricing import DEFAULT_PRICING_TABLE, ModelPricing, PricingTable
from token_stats.core.providers import Provider, parse_provider
from token_stats.core.scanner import ScanOptions


@dataclass(frozen=True)
class BudgetConfig:
    """Monthly spend budget."""
    monthly: float

    def __post_init__(self):
        """Validate budget values are positive."""
        if self.monthly <= 0:
            raise ValueError("monthly budget must be > 0")


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    cache_root: Optional[Path] = None
    refresh_min_interval_seconds: int = 0
    max_workers: int = 1
    provider_roots: Dict[Provider, Tuple[Path, ...]] = field(default_factory=dict)
    pricing: Dict[str, ModelPricing] = field(default_factory=dict)
    budget: Optional[BudgetConfig] = None

    def __post_init__(self):
        if self.refresh_min_interval_seconds < 0:
            raise ValueError("refresh_min_interval_seconds must be >= 0")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

    def pricing_table(self) -> PricingTable:
        """Default price table with configured overrides applied."""
        return DEFAULT_PRICING_TABLE.merged(self.pricing)

    def scan_options(self, all_time: bool = False, force_rescan: bool = False) -> ScanOptions:
        return ScanOptions(
            all_time=all_time,
            force_rescan=force_rescan,
            cache_root=self.cache_root,
            refresh_min_interval_seconds=self.refresh_min_interval_seconds,
            provider_roots=dict(self.provider_roots),
            pricing=self.pricing_table(),
            max_workers=self.max_workers,
        )


ALLOWED_TOP_KEYS = {
    'cache_root',
    'refresh_min_interval_seconds',
    'max_workers',
    'providers',
    'pricing',
    'budget',
}
ALLOWED_PRICING_KEYS = {'input', 'output', 'cache_read', 'cache_write'}


def load_config(path: str) -> AppConfig:
    """Load and validate configuration from a YAML file.

    Unknown keys and wrong types are rejected so a typo never silently
    falls back to defaults.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return AppConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    unknown_keys = set(raw_config.keys()) - ALLOWED_TOP_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    cache_root = raw_config.get('cache_root')
    if cache_root is not None and not isinstance(cache_root, str):
        raise ValueError("'cache_root' must be a string")

    interval = raw_config.get('refresh_min_interval_seconds', 0)
    if not _is_int(interval):
        raise ValueError("'refresh_min_interval_seconds' must be an integer")

    max_workers = raw_config.get('max_workers', 1)
    if not _is_int(max_workers):
        raise ValueError("'max_workers' must be an integer")

    return AppConfig(
        cache_root=Path(cache_root).expanduser() if cache_root else None,
        refresh_min_interval_seconds=interval,
        max_workers=max_workers,
        provider_roots=_parse_providers(raw_config.get('providers', {})),
        pricing=_parse_pricing(raw_config.get('pricing', {})),
        budget=_parse_budget(raw_config.get('budget')),
    )


def _parse_providers(data: Any) -> Dict[Provider, Tuple[Path, ...]]:
    if not isinstance(data, dict):
        raise ValueError("'providers' must be a dictionary")

    roots = {}
    for name, provider_data in data.items():
        provider = parse_provider(str(name))
        path = f"providers.{name}"
        if not isinstance(provider_data, dict):
            raise ValueError(f"'{path}' must be a dictionary")
        unknown_keys = set(provider_data.keys()) - {'root', 'roots'}
        if unknown_keys:
            raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

        if 'root' in provider_data and 'roots' in provider_data:
            raise ValueError(f"Use either 'root' or 'roots' in {path}, not both")
        if 'root' in provider_data:
            values = [provider_data['root']]
        else:
            values = provider_data.get('roots', [])
        if not isinstance(values, list) or not values or not all(isinstance(v, str) for v in values):
            raise ValueError(f"Roots in {path} must be non-empty strings")
        roots[provider] = tuple(Path(v).expanduser() for v in values)
    return roots


def _parse_pricing(data: Any) -> Dict[str, ModelPricing]:
    if not isinstance(data, dict):
        raise ValueError("'pricing' must be a dictionary")

    prices = {}
    for model, rates in data.items():
        path = f"pricing.{model}"
        if not isinstance(rates, dict):
            raise ValueError(f"'{path}' must be a dictionary")
        unknown_keys = set(rates.keys()) - ALLOWED_PRICING_KEYS
        if unknown_keys:
            raise ValueError(f"Unknown keys in {path}: {unknown_keys}")
        for required in ('input', 'output'):
            if required not in rates:
                raise ValueError(f"Missing required '{required}' in {path}")

        input_rate = _parse_rate(rates['input'], f"{path}.input")
        prices[str(model)] = ModelPricing(
            input_per_million=input_rate,
            output_per_million=_parse_rate(rates['output'], f"{path}.output"),
            cache_read_per_million=_parse_rate(rates.get('cache_read', 0), f"{path}.cache_read"),
            # cache writes bill at the input rate unless priced separately
            cache_write_per_million=_parse_rate(rates.get('cache_write', rates['input']), f"{path}.cache_write"),
        )
    return prices


def _parse_rate(value: Any, path: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"'{path}' must be a number")
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{path}' must be a number")
    if not rate.is_finite():
        raise ValueError(f"'{path}' must be a finite number")
    if rate < 0:
        raise ValueError(f"'{path}' must be >= 0")
    return rate


def _parse_budget(data: Any) -> Optional[BudgetConfig]:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError("'budget' must be a dictionary")

    unknown_keys = set(data.keys()) - {'monthly'}
    if unknown_keys:
        raise ValueError(f"Unknown budget keys: {unknown_keys}")
    if 'monthly' not in data:
        raise ValueError("Missing required 'monthly' budget")

    monthly = data['monthly']
    if isinstance(monthly, bool) or not isinstance(monthly, (int, float)) or not math.isfinite(monthly):
        raise ValueError("'monthly' budget must be a number")
    return BudgetConfig(monthly=float(monthly))


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
