"""
Almanac Configuration - Settings for the scheduler, queue, engine and API.

Loaded from YAML config file with environment variable override support.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from almanac.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("almanac.yaml")


def _load_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    return dict(data)


def _filter_keys(cls: type, src: Any) -> dict[str, Any]:
    """Keep only keys that are dataclass fields of `cls` (unknown keys are ignored)."""
    if not isinstance(src, dict):
        return {}
    allowed = {f.name for f in fields(cls)}
    return {k: v for k, v in src.items() if k in allowed}


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class DatabaseConfig:
    """SQLite storage location."""

    path: Path = field(default_factory=lambda: Path("data/almanac.db"))


@dataclass
class ProviderConfig:
    """External deep-research provider (OpenAI Responses API compatible)."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    model: str = "o4-mini-deep-research-2025-06-26"
    request_timeout_seconds: float = 900.0  # deep research can take a while
    background: bool = True


@dataclass
class EngineConfig:
    """Retry, polling and request-shaping settings for the execution engine."""

    max_retries: int = 1  # 2 attempts total
    initial_delay_seconds: float = 5.0
    poll_interval_seconds: float = 5.0
    max_poll_seconds: float = 600.0
    recency_days: int = 7
    max_items: int = 5
    use_trusted_sources: bool = True
    trusted_min_score: float = 0.6
    trusted_limit: int = 5


@dataclass
class PricingConfig:
    """Per-unit rates used to estimate the cost of a job, in cents."""

    input_cents_per_million: float = 110.0  # $1.10 per 1M input tokens
    output_cents_per_million: float = 440.0  # $4.40 per 1M output tokens
    web_search_cents: float = 1.0


@dataclass
class SchedulerConfig:
    """Timer settings."""

    timezone: str = "UTC"


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class LoggingConfig:
    level: str = "INFO"
    json: bool = False


@dataclass
class AlmanacConfig:
    """Main configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_path: Path | None = None

    @classmethod
    def load(cls, config_path: Path | str | None = None, env: dict[str, str] | None = None) -> AlmanacConfig:
        """Load configuration from YAML file, then apply environment overrides."""
        env = dict(os.environ) if env is None else env
        path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

        data = _load_yaml(path) if path.exists() else {}
        config = cls.from_dict(data)
        config.config_path = path
        config.apply_env(env)
        config.validate()
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AlmanacConfig:
        """Create config from dictionary."""
        data = dict(data or {})

        database_kwargs = _filter_keys(DatabaseConfig, data.get("database"))
        if "path" in database_kwargs:
            database_kwargs["path"] = Path(str(database_kwargs["path"]))

        try:
            return cls(
                database=DatabaseConfig(**database_kwargs),
                provider=ProviderConfig(**_filter_keys(ProviderConfig, data.get("provider"))),
                engine=EngineConfig(**_filter_keys(EngineConfig, data.get("engine"))),
                pricing=PricingConfig(**_filter_keys(PricingConfig, data.get("pricing"))),
                scheduler=SchedulerConfig(**_filter_keys(SchedulerConfig, data.get("scheduler"))),
                server=ServerConfig(**_filter_keys(ServerConfig, data.get("server"))),
                logging=LoggingConfig(**_filter_keys(LoggingConfig, data.get("logging"))),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def apply_env(self, env: dict[str, str]) -> None:
        """Apply environment variable overrides."""
        if env.get("ALMANAC_DB_PATH"):
            self.database.path = Path(env["ALMANAC_DB_PATH"])
        if env.get("OPENAI_API_KEY") and not self.provider.api_key:
            self.provider.api_key = env["OPENAI_API_KEY"]
        if env.get("ALMANAC_PROVIDER_BASE_URL"):
            self.provider.base_url = env["ALMANAC_PROVIDER_BASE_URL"]
        if env.get("ALMANAC_TIMEZONE"):
            self.scheduler.timezone = env["ALMANAC_TIMEZONE"]
        if env.get("ALMANAC_LOG_LEVEL"):
            self.logging.level = env["ALMANAC_LOG_LEVEL"]
        if env.get("ALMANAC_LOG_JSON"):
            self.logging.json = _env_bool(env["ALMANAC_LOG_JSON"])

    def validate(self) -> None:
        """Reject values the engine cannot run with."""
        engine = self.engine
        if engine.max_retries < 0:
            raise ConfigError("engine.max_retries must be >= 0")
        if engine.initial_delay_seconds < 0:
            raise ConfigError("engine.initial_delay_seconds must be >= 0")
        if engine.poll_interval_seconds <= 0:
            raise ConfigError("engine.poll_interval_seconds must be > 0")
        if engine.max_poll_seconds <= 0:
            raise ConfigError("engine.max_poll_seconds must be > 0")
        if engine.max_items < 1:
            raise ConfigError("engine.max_items must be >= 1")
        if engine.recency_days < 1:
            raise ConfigError("engine.recency_days must be >= 1")
        if not 0.0 <= engine.trusted_min_score <= 1.0:
            raise ConfigError("engine.trusted_min_score must be within [0, 1]")

        pricing = self.pricing
        for name in ("input_cents_per_million", "output_cents_per_million", "web_search_cents"):
            if getattr(pricing, name) < 0:
                raise ConfigError(f"pricing.{name} must be >= 0")

        try:
            ZoneInfo(self.scheduler.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Unknown scheduler.timezone: {self.scheduler.timezone}") from e

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.scheduler.timezone)
