"""
Configuration management and loading.

Handles analyzer settings: quota policy, ingestion batching and dashboard sizes.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml


DEFAULT_MONTHLY_QUOTA = 300
DEFAULT_EXCLUDED_MODEL_PATTERNS = ("gpt-4.1", "gpt-4.0")
GROWTH_PERIODS = (7, 30, 90)


@dataclass(frozen=True)
class QuotaConfig:
    """Quota policy applied by the quota engine and the normalizer."""
    default_monthly_quota: int = DEFAULT_MONTHLY_QUOTA
    near_threshold: float = 80.0
    over_threshold: float = 100.0
    excluded_model_patterns: Tuple[str, ...] = DEFAULT_EXCLUDED_MODEL_PATTERNS

    def __post_init__(self):
        """Validate quota thresholds are consistent."""
        if self.default_monthly_quota < 0:
            raise ValueError("default_monthly_quota cannot be negative")
        if self.near_threshold < 0:
            raise ValueError("near_threshold cannot be negative")
        if self.over_threshold < self.near_threshold:
            raise ValueError("over_threshold must be >= near_threshold")


@dataclass(frozen=True)
class IngestConfig:
    """Chunking settings for CSV ingestion."""
    batch_size: int = 1000

    def __post_init__(self):
        """Validate batch size is positive."""
        if self.batch_size <= 0:
            raise ValueError("batch_size must be > 0")


@dataclass(frozen=True)
class DashboardConfig:
    """Sizes and windows of the dashboard view-models."""
    top_models: int = 8
    top_users: int = 10
    trend_days: int = 30
    growth_period_days: int = 7

    def __post_init__(self):
        """Validate view sizes."""
        for name in ("top_models", "top_users", "trend_days"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.growth_period_days not in GROWTH_PERIODS:
            raise ValueError(f"growth_period_days must be one of: {list(GROWTH_PERIODS)}")


@dataclass(frozen=True)
class AnalyzerConfig:
    """Complete analyzer configuration."""
    quota: QuotaConfig = field(default_factory=QuotaConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)

    @classmethod
    def default(cls) -> "AnalyzerConfig":
        """Configuration with every built-in default."""
        return cls()


def load_analyzer_config(path: Optional[str] = None) -> AnalyzerConfig:
    """Load and validate analyzer configuration from a YAML file.

    Every section is optional; missing values keep their defaults. Unknown
    keys are rejected so that a typo never silently falls back to a default.

    Args:
        path: Path to YAML configuration file, or None for the defaults

    Returns:
        Validated AnalyzerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return AnalyzerConfig.default()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Analyzer config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'quota', 'ingest', 'dashboard'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    return AnalyzerConfig(
        quota=_parse_quota_config(_section(raw_config, 'quota')),
        ingest=_parse_ingest_config(_section(raw_config, 'ingest')),
        dashboard=_parse_dashboard_config(_section(raw_config, 'dashboard')),
    )


def _section(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return a config section, validating it is a dictionary."""
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _check_keys(data: Dict[str, Any], allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _number(data: Dict[str, Any], key: str, path: str, integer: bool = False):
    """Read a numeric value, rejecting booleans and strings."""
    value = data[key]
    valid_types = (int,) if integer else (int, float)
    if isinstance(value, bool) or not isinstance(value, valid_types):
        kind = "an integer" if integer else "a number"
        raise ValueError(f"'{key}' in {path} must be {kind}")
    return value


def _parse_quota_config(data: Dict[str, Any]) -> QuotaConfig:
    """Parse and validate the quota section.

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {'default_monthly_quota', 'near_threshold', 'over_threshold', 'excluded_model_patterns'}
    _check_keys(data, allowed_keys, "quota")

    kwargs: Dict[str, Any] = {}
    if 'default_monthly_quota' in data:
        kwargs['default_monthly_quota'] = _number(data, 'default_monthly_quota', "quota", integer=True)
    for key in ('near_threshold', 'over_threshold'):
        if key in data:
            kwargs[key] = float(_number(data, key, "quota"))

    if 'excluded_model_patterns' in data:
        patterns = data['excluded_model_patterns']
        if not isinstance(patterns, list) or not all(isinstance(p, str) and p for p in patterns):
            raise ValueError("'excluded_model_patterns' in quota must be a list of non-empty strings")
        kwargs['excluded_model_patterns'] = tuple(patterns)

    return QuotaConfig(**kwargs)


def _parse_ingest_config(data: Dict[str, Any]) -> IngestConfig:
    _check_keys(data, {'batch_size'}, "ingest")
    if 'batch_size' in data:
        return IngestConfig(batch_size=_number(data, 'batch_size', "ingest", integer=True))
    return IngestConfig()


def _parse_dashboard_config(data: Dict[str, Any]) -> DashboardConfig:
    """Parse and validate the dashboard section.

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {'top_models', 'top_users', 'trend_days', 'growth_period_days'}
    _check_keys(data, allowed_keys, "dashboard")

    kwargs = {key: _number(data, key, "dashboard", integer=True) for key in allowed_keys if key in data}
    return DashboardConfig(**kwargs)
