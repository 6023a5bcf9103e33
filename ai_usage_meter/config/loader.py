"""
Configuration management and loading.

Handles application settings from YAML and environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ..core.pricing import PRICING_CACHE_TTL_SECONDS
from ..jobs.connection import parse_redis_url
from ..sdk.openrouter_client import DEFAULT_MODEL
from ..storage.db import DEFAULT_DB_PATH

DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_CATALOG_URL = "https://openrouter.ai/api/v1/models"
DEFAULT_REDIS_URL = "redis://localhost:6379"

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "OPENROUTER_API_KEY": ("openrouter", "api_key"),
    "OPENROUTER_BASE_URL": ("openrouter", "base_url"),
    "REDIS_URL": ("redis", "url"),
    "AI_USAGE_DB_PATH": ("storage", "db_path"),
}


@dataclass(frozen=True)
class OpenRouterConfig:
    """Completion API and model catalog settings."""
    api_key: Optional[str] = None
    base_url: str = DEFAULT_OPENROUTER_BASE_URL
    catalog_url: str = DEFAULT_CATALOG_URL
    default_model: str = DEFAULT_MODEL

    def __post_init__(self):
        """Validate URLs and default model."""
        for name in ("base_url", "catalog_url"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.startswith(("http://", "https://")):
                raise ValueError(f"openrouter.{name} must be an http(s) URL")
        if not isinstance(self.default_model, str) or not self.default_model.strip():
            raise ValueError("openrouter.default_model cannot be empty")


@dataclass(frozen=True)
class RedisConfig:
    """Redis connection used by the cache and the job queues."""
    url: str = DEFAULT_REDIS_URL

    def __post_init__(self):
        """Validate the Redis URL parses."""
        parse_redis_url(self.url)


@dataclass(frozen=True)
class StorageConfig:
    """Usage log database location."""
    db_path: str = DEFAULT_DB_PATH

    def __post_init__(self):
        if not isinstance(self.db_path, str) or not self.db_path.strip():
            raise ValueError("storage.db_path cannot be empty")


@dataclass(frozen=True)
class PricingConfig:
    """Model pricing cache settings."""
    cache_ttl_seconds: int = PRICING_CACHE_TTL_SECONDS

    def __post_init__(self):
        if isinstance(self.cache_ttl_seconds, bool) or not isinstance(self.cache_ttl_seconds, int):
            raise ValueError("pricing.cache_ttl_seconds must be an integer")
        if self.cache_ttl_seconds <= 0:
            raise ValueError("pricing.cache_ttl_seconds must be > 0")


@dataclass(frozen=True)
class Settings:
    """Complete application settings."""
    openrouter: OpenRouterConfig = field(default_factory=OpenRouterConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)


_SECTIONS = {
    "openrouter": OpenRouterConfig,
    "redis": RedisConfig,
    "storage": StorageConfig,
    "pricing": PricingConfig,
}


def _read_yaml(path: str) -> Dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")
    return raw_config


def _section_kwargs(raw_config: Dict[str, Any], section: str) -> Dict[str, Any]:
    section_data = raw_config.get(section, {}) or {}
    if not isinstance(section_data, dict):
        raise ValueError(f"'{section}' must be a dictionary")

    allowed_keys = set(_SECTIONS[section].__dataclass_fields__)
    unknown_keys = set(section_data) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {section}: {unknown_keys}")
    return dict(section_data)


def load_settings(
    path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None
) -> Settings:
    """Load and validate settings from an optional YAML file and the environment.

    Environment variables take precedence over the file; anything left
    unset uses the built-in defaults.

    Args:
        path: Path to YAML configuration file (optional)
        env: Environment mapping (defaults to os.environ)

    Returns:
        Validated Settings object

    Raises:
        FileNotFoundError: If path is given but doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    env = os.environ if env is None else env
    raw_config = _read_yaml(path) if path else {}

    unknown_keys = set(raw_config) - set(_SECTIONS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {name: _section_kwargs(raw_config, name) for name in _SECTIONS}

    for variable, (section, key) in ENV_OVERRIDES.items():
        value = env.get(variable)
        if value:
            sections[section][key] = value

    return Settings(**{
        name: config_class(**sections[name])
        for name, config_class in _SECTIONS.items()
    })
