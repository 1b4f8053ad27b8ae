"""
Typed configuration for the feature engine.
Loads config/indicators.yml and config/correlation.yml once and hands out dataclasses.
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional

import yaml
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent / 'config'
DEFAULT_INDICATORS_CONFIG = CONFIG_DIR / 'indicators.yml'
DEFAULT_CORRELATION_CONFIG = CONFIG_DIR / 'correlation.yml'

# YAML tier name -> StoragePolicy attribute
TIER_KEYS = {
    'ticker_indicators': 'core',
    'feature_snapshots': 'snapshot',
    'cache_only': 'cache',
    'on_demand': 'on_demand',
}


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or is invalid."""
    pass


@dataclass(frozen=True)
class StoragePolicy:
    """Indicator base names per storage tier. A name may sit in several tiers."""
    core: frozenset = frozenset()
    snapshot: frozenset = frozenset()
    cache: frozenset = frozenset()
    on_demand: frozenset = frozenset()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoragePolicy':
        unknown = set(data) - set(TIER_KEYS)
        if unknown:
            raise ConfigError(f"Unknown storage tiers: {sorted(unknown)}")
        tiers = {}
        for yaml_key, attr in TIER_KEYS.items():
            names = data.get(yaml_key) or []
            if not isinstance(names, list):
                raise ConfigError(f"storage.{yaml_key} must be a list")
            tiers[attr] = frozenset(str(n).strip().lower() for n in names)
        return cls(**tiers)

    def all_names(self) -> List[str]:
        """Union of every tier, sorted for stable ordering."""
        return sorted(self.core | self.snapshot | self.cache | self.on_demand)

    def tiers_for(self, name: str) -> List[str]:
        return [attr for attr in TIER_KEYS.values() if name in getattr(self, attr)]


@dataclass
class AnalyticsSettings:
    """Windows and benchmark used by the derived analytics."""
    benchmark_symbol: str = 'SPY'
    sharpe_window: int = 60
    volatility_window: int = 30
    beta_window: int = 60
    momentum_window: int = 10
    risk_free: float = 0.02

    def __post_init__(self):
        for name in ('sharpe_window', 'volatility_window', 'beta_window', 'momentum_window'):
            if int(getattr(self, name)) < 2:
                raise ConfigError(f"analytics.{name} must be >= 2")
        if not self.benchmark_symbol:
            raise ConfigError("analytics.benchmark_symbol must be non-empty")

    @property
    def keys(self) -> Dict[str, str]:
        """Snapshot keys produced for each derived metric."""
        return {
            'sharpe': f"sharpe_{self.sharpe_window}",
            'volatility': f"volatility_{self.volatility_window}",
            'drawdown': 'drawdown',
            'beta': f"beta_{self.beta_window}",
            'momentum': f"momentum_{self.momentum_window}",
        }


@dataclass
class IndicatorSettings:
    """Storage policy, per-indicator defaults and runtime knobs."""
    storage: StoragePolicy = field(default_factory=StoragePolicy)
    defaults: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    cache_ttl: Dict[str, int] = field(default_factory=dict)
    ai_features: List[str] = field(default_factory=list)
    analytics: AnalyticsSettings = field(default_factory=AnalyticsSettings)
    lookback_buffer_days: int = 90
    resolution: str = '1d'
    batch_size: int = 1000

    def __post_init__(self):
        if self.batch_size <= 0:
            raise ConfigError("batch_size must be positive")
        if self.lookback_buffer_days < 0:
            raise ConfigError("snapshots.lookback_buffer_days must be >= 0")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IndicatorSettings':
        """Build settings from a parsed YAML mapping."""
        if not isinstance(data, dict):
            raise ConfigError("Indicator config must be a mapping")

        defaults = {
            str(name).lower(): dict(params or {})
            for name, params in (data.get('defaults') or {}).items()
        }
        return cls(
            storage=StoragePolicy.from_dict(data.get('storage') or {}),
            defaults=defaults,
            cache_ttl={k: int(v) for k, v in (data.get('cache_ttl') or {}).items()},
            ai_features=[str(n).lower() for n in data.get('ai_features') or []],
            analytics=AnalyticsSettings(**(data.get('analytics') or {})),
            lookback_buffer_days=int((data.get('snapshots') or {}).get('lookback_buffer_days', 90)),
            resolution=str(data.get('resolution', '1d')),
            batch_size=int(data.get('batch_size', 1000))
        )

    def defaults_for(self, name: str) -> Dict[str, Any]:
        return dict(self.defaults.get(name, {}))

    def ttl_for(self, tier: str, fallback: int = 86400) -> int:
        return int(self.cache_ttl.get(tier, fallback))


@dataclass
class CorrelationConfig:
    """Parameters for one correlation matrix run."""
    lookback_days: int = 120
    window: int = 20
    chunk_size: int = 200
    min_overlap: int = 20
    limit: int = 0
    flush_every: int = 5000

    def __post_init__(self):
        """Validate ranges."""
        if self.lookback_days <= 0:
            raise ConfigError("lookback_days must be positive")
        if self.window < 2:
            raise ConfigError("window must be >= 2")
        if self.chunk_size <= 0:
            raise ConfigError("chunk_size must be positive")
        if self.min_overlap < 0:
            raise ConfigError("min_overlap must be >= 0")
        if self.limit < 0:
            raise ConfigError("limit must be >= 0")
        if self.flush_every <= 0:
            raise ConfigError("flush_every must be positive")

    @property
    def required_overlap(self) -> int:
        return max(self.window, self.min_overlap)


def load_indicator_settings(config_path: Optional[str] = None) -> IndicatorSettings:
    """
    Load indicator settings from YAML.

    Args:
        config_path: Path to the config file (defaults to INDICATORS_CONFIG_PATH
            or config/indicators.yml)

    Returns:
        IndicatorSettings

    Raises:
        ConfigError: If the file is missing or invalid
    """
    if config_path is None:
        config_path = os.getenv('INDICATORS_CONFIG_PATH', str(DEFAULT_INDICATORS_CONFIG))

    data = _read_yaml(config_path)
    if 'storage' not in data:
        raise ConfigError("Indicator config missing 'storage' section")

    try:
        settings = IndicatorSettings.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid indicator config {config_path}: {e}")

    logger.debug(f"Loaded indicator settings from {config_path}")
    return settings


def load_correlation_config(config_path: Optional[str] = None, **overrides: Any) -> CorrelationConfig:
    """
    Load correlation defaults from YAML, then apply non-None keyword overrides.

    Raises:
        ConfigError: If the file is missing or invalid
    """
    if config_path is None:
        config_path = os.getenv('CORRELATION_CONFIG_PATH', str(DEFAULT_CORRELATION_CONFIG))

    data = _read_yaml(config_path)
    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return CorrelationConfig(**{k: int(v) for k, v in data.items()})
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid correlation config {config_path}: {e}")


def _read_yaml(config_path: str) -> Dict[str, Any]:
    config_file = Path(config_path)
    if not config_file.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config {config_path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_path} must be a mapping")
    return data
