"""Configuration loader with Pydantic validation and environment variable interpolation."""

from __future__ import annotations

import os
import re
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables at module level
load_dotenv(find_dotenv(usecwd=True))

from depthbook.constants import (
    DEFAULT_DEPTH_LEVELS,
    DEFAULT_EXCHANGE,
    DEFAULT_MAX_ORDER_SIZE,
    DEFAULT_MAX_SUBSCRIBERS,
    DEFAULT_MIN_ORDER_SIZE,
    DEFAULT_PRICE_PRECISION,
    DEFAULT_QUANTITY_PRECISION,
    DEFAULT_SLIPPAGE_PRECISION,
    DEFAULT_SYMBOL,
    DEFAULT_TOP_LEVELS,
    DEFAULT_UPDATE_INTERVAL_MS,
    ConnectorMode,
    LogLevel,
)


def interpolate_env_vars(value: Any) -> Any:
    """
    Interpolate environment variables in string values.

    Supports formats:
    - ${VAR_NAME} - replaced by the variable, or an empty string if unset
    - ${VAR_NAME:default} - optional with default value
    """
    if not isinstance(value, str):
        return value

    pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)

        env_value = os.environ.get(var_name)

        if env_value is not None:
            return env_value
        elif default is not None:
            return default
        else:
            return ""

    return re.sub(pattern, replacer, value)


def process_config_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively process config dict to interpolate env vars."""
    result = {}
    for key, value in data.items():
        if isinstance(value, dict):
            result[key] = process_config_dict(value)
        elif isinstance(value, list):
            result[key] = [
                process_config_dict(item) if isinstance(item, dict) else interpolate_env_vars(item)
                for item in value
            ]
        else:
            result[key] = interpolate_env_vars(value)
    return result


def _to_decimal(v: Any) -> Decimal:
    if isinstance(v, Decimal):
        return v
    return Decimal(str(v))


# ============================================
# Pydantic Configuration Models
# ============================================


class EnvironmentConfig(BaseModel):
    """Environment and runtime settings."""

    log_level: LogLevel = LogLevel.INFO
    log_json: bool = False
    connector: ConnectorMode = ConnectorMode.SIM


class ExchangeConfig(BaseModel):
    """Upstream exchange (ccxt) settings."""

    name: str = DEFAULT_EXCHANGE
    symbol: str = DEFAULT_SYMBOL
    api_key: str = ""
    api_secret: str = ""
    depth_levels: int = DEFAULT_DEPTH_LEVELS
    timeout_ms: int = 10000
    enable_rate_limit: bool = True

    # Retry settings
    max_retry_attempts: int = 3
    retry_delay_ms: int = 1000
    retry_backoff_multiplier: float = 2.0

    @field_validator("depth_levels", "timeout_ms", "max_retry_attempts")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate positive integers."""
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v

    @field_validator("retry_delay_ms")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Retry delay must be non-negative, got: {v}")
        return v

    @field_validator("retry_backoff_multiplier")
    @classmethod
    def validate_multiplier(cls, v: float) -> float:
        if v < 1:
            raise ValueError(f"Backoff multiplier must be >= 1, got: {v}")
        return v

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_secret)


class UpdaterConfig(BaseModel):
    """Background order book updater settings."""

    interval_ms: int = DEFAULT_UPDATE_INTERVAL_MS

    @field_validator("interval_ms")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Update interval must be positive, got: {v}")
        return v

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000


class StoreConfig(BaseModel):
    """Order book store retention."""

    max_age_seconds: float = 600.0  # 0 disables expiry

    @field_validator("max_age_seconds")
    @classmethod
    def validate_max_age(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"max_age_seconds must be non-negative, got: {v}")
        return v


class DistributionConfig(BaseModel):
    """Live-update fan-out settings."""

    max_subscribers: int = DEFAULT_MAX_SUBSCRIBERS
    top_levels: int = DEFAULT_TOP_LEVELS
    queue_size: int = 64  # Per-subscriber outbound queue

    @field_validator("max_subscribers", "top_levels", "queue_size")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v


class MarketOrderConfig(BaseModel):
    """Market order limits and output precision."""

    min_order_size: Decimal = DEFAULT_MIN_ORDER_SIZE
    max_order_size: Decimal = DEFAULT_MAX_ORDER_SIZE
    price_precision: int = DEFAULT_PRICE_PRECISION
    quantity_precision: int = DEFAULT_QUANTITY_PRECISION
    slippage_precision: int = DEFAULT_SLIPPAGE_PRECISION

    @field_validator("min_order_size", "max_order_size", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        """Convert numeric values to Decimal."""
        return _to_decimal(v)

    @field_validator("price_precision", "quantity_precision", "slippage_precision")
    @classmethod
    def validate_precision(cls, v: int) -> int:
        if not 0 <= v <= 18:
            raise ValueError(f"Precision must be between 0 and 18, got: {v}")
        return v

    @model_validator(mode="after")
    def validate_size_range(self) -> MarketOrderConfig:
        if self.min_order_size <= 0:
            raise ValueError(f"min_order_size must be positive, got: {self.min_order_size}")
        if self.min_order_size > self.max_order_size:
            raise ValueError(
                f"min_order_size ({self.min_order_size}) must not exceed "
                f"max_order_size ({self.max_order_size})"
            )
        return self


class ServerConfig(BaseModel):
    """HTTP / WebSocket transport settings."""

    host: str = "0.0.0.0"
    port: int = 3000
    api_prefix: str = "api"
    ws_path: str = "/ws/depth"

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 <= v <= 65535:
            raise ValueError(f"Invalid port: {v}")
        return v

    @field_validator("ws_path")
    @classmethod
    def validate_ws_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"ws_path must start with '/', got: {v}")
        return v

    @field_validator("api_prefix")
    @classmethod
    def strip_prefix(cls, v: str) -> str:
        return v.strip("/")


class RateLimitConfig(BaseModel):
    """Per-client rate limiting on the market endpoint."""

    enabled: bool = True
    window_seconds: float = 60.0
    max_requests: int = 10

    @field_validator("window_seconds")
    @classmethod
    def validate_window(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"window_seconds must be positive, got: {v}")
        return v

    @field_validator("max_requests")
    @classmethod
    def validate_max_requests(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"max_requests must be positive, got: {v}")
        return v


class HistoryConfig(BaseModel):
    """Order history ledger retention."""

    retention_days: int = 30
    max_records: int = 10000

    @field_validator("retention_days", "max_records")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v


class SimConfig(BaseModel):
    """Synthetic quote generator settings."""

    start_price: Decimal = Decimal("100000")
    tick_size: Decimal = Decimal("0.01")
    level_spacing: Decimal = Decimal("1.0")
    max_level_quantity: Decimal = Decimal("2.0")
    seed: int | None = None

    @field_validator(
        "start_price", "tick_size", "level_spacing", "max_level_quantity", mode="before"
    )
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        return _to_decimal(v)

    @field_validator("start_price", "tick_size", "level_spacing", "max_level_quantity")
    @classmethod
    def validate_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v


class AppConfig(BaseModel):
    """Root application configuration."""

    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    updater: UpdaterConfig = Field(default_factory=UpdaterConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    distribution: DistributionConfig = Field(default_factory=DistributionConfig)
    market_order: MarketOrderConfig = Field(default_factory=MarketOrderConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    sim: SimConfig = Field(default_factory=SimConfig)

    @model_validator(mode="after")
    def validate_top_levels(self) -> AppConfig:
        """Published top-of-book cannot be deeper than what is fetched."""
        if self.distribution.top_levels > self.exchange.depth_levels:
            raise ValueError(
                f"distribution.top_levels ({self.distribution.top_levels}) must not exceed "
                f"exchange.depth_levels ({self.exchange.depth_levels})"
            )
        return self

    @property
    def is_sim_mode(self) -> bool:
        """Check if quotes come from the synthetic generator."""
        return self.environment.connector == ConnectorMode.SIM

    def public_view(self) -> dict[str, Any]:
        """Non-sensitive configuration for status endpoints."""
        return {
            "exchange": {
                "name": self.exchange.name,
                "symbol": self.exchange.symbol,
                "depthLevels": self.exchange.depth_levels,
                "updateInterval": self.updater.interval_ms,
                "connector": self.environment.connector.value,
            },
            "websocket": {
                "path": self.server.ws_path,
                "maxConnections": self.distribution.max_subscribers,
                "topLevels": self.distribution.top_levels,
            },
            "rateLimit": {
                "enabled": self.rate_limit.enabled,
                "windowSeconds": self.rate_limit.window_seconds,
                "limit": self.rate_limit.max_requests,
            },
            "marketOrder": {
                "minOrderSize": float(self.market_order.min_order_size),
                "maxOrderSize": float(self.market_order.max_order_size),
            },
        }


# ============================================
# Configuration Loader
# ============================================


class ConfigLoader:
    """Load and validate configuration from YAML files with env var interpolation."""

    def __init__(self, config_path: str | Path) -> None:
        """
        Initialize config loader.

        Args:
            config_path: Path to the YAML configuration file.
        """
        self.config_path = Path(config_path)
        self._config: AppConfig | None = None

    def load(self) -> AppConfig:
        """
        Load and validate configuration.

        Returns:
            Validated AppConfig instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            yaml.YAMLError: If YAML is invalid.
            pydantic.ValidationError: If config validation fails.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            raw_config = {}

        # Interpolate environment variables
        processed_config = process_config_dict(raw_config)

        self._config = AppConfig.model_validate(processed_config)

        return self._config

    @property
    def config(self) -> AppConfig:
        """Get loaded config, loading if necessary."""
        if self._config is None:
            return self.load()
        return self._config

    def reload(self) -> AppConfig:
        """Force reload configuration from disk."""
        self._config = None
        return self.load()


def load_config(config_path: str | Path) -> AppConfig:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated AppConfig instance.
    """
    loader = ConfigLoader(config_path)
    return loader.load()


def load_config_with_overrides(
    config_path: str | Path | None,
    *,
    symbol: str | None = None,
    connector: str | None = None,
    log_level: str | None = None,
) -> AppConfig:
    """
    Load configuration with CLI overrides.

    Args:
        config_path: Path to the YAML configuration file, or None for defaults.
        symbol: Override trading symbol.
        connector: Override quote connector (ccxt or sim).
        log_level: Override log level.

    Returns:
        Validated AppConfig instance with overrides applied.
    """
    config = load_config(config_path) if config_path is not None else AppConfig()

    updates: dict[str, Any] = {}

    if symbol is not None:
        updates["exchange"] = config.exchange.model_copy(update={"symbol": symbol})

    env_updates: dict[str, Any] = {}
    if connector is not None:
        env_updates["connector"] = ConnectorMode(connector.lower())
    if log_level is not None:
        env_updates["log_level"] = LogLevel(log_level.upper())
    if env_updates:
        updates["environment"] = config.environment.model_copy(update=env_updates)

    if updates:
        return config.model_copy(update=updates)

    return config
