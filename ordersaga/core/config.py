"""
OrderSagaConfig - Unified configuration for the order saga runtime.

Provides a single, type-safe configuration object that wires together:
- Storage (order records and inventory ledger)
- Payment gateway selection
- Worker pool sizing
- Logging

Example:
    >>> from ordersaga import OrderSagaConfig, configure
    >>>
    >>> config = OrderSagaConfig(
    ...     storage_url="sqlite:///./orders.db",
    ...     payment_provider="http",
    ...     payment_base_url="https://payments.internal",
    ...     max_workers=32,
    ... )
    >>> configure(config)

Configuration can also come from ``ORDERSAGA_*`` environment variables
(``OrderSagaConfig.from_env()``) or a YAML file
(``OrderSagaConfig.from_yaml("ordersaga.yaml")``).
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from ordersaga.core.env import ENV_PREFIX, EnvManager, parse_bool

logger = logging.getLogger(__name__)

PAYMENT_PROVIDERS = ("mock", "http")
STORAGE_SCHEMES = ("memory://", "sqlite://")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class OrderSagaConfig:
    """
    Unified configuration for the order saga runtime.

    Attributes:
        currency: Currency used when a payment request does not name one
        payment_provider: "mock" (in-process gateway) or "http"
        payment_base_url: Base URL of the payment service (http provider only)
        payment_timeout: Per-request timeout in seconds for the http provider
        max_workers: Maximum number of sagas executing concurrently
        storage_url: "memory://" or "sqlite:///path/to/db" (":memory:" allowed)
        log_level: Level for the ordersaga logger namespace
        json_logs: Emit structured JSON logs instead of plain text
    """

    currency: str = "USD"
    payment_provider: str = "mock"
    payment_base_url: str | None = None
    payment_timeout: float = 10.0
    max_workers: int = 10
    storage_url: str = "memory://"
    log_level: str = "INFO"
    json_logs: bool = False

    def __post_init__(self) -> None:
        self.currency = self.currency.upper()
        self.payment_provider = self.payment_provider.lower()
        self.log_level = self.log_level.upper()
        self._validate()

    def _validate(self) -> None:
        if len(self.currency) != 3:
            msg = f"currency must be a 3-letter code, got {self.currency!r}"
            raise ValueError(msg)
        if self.payment_provider not in PAYMENT_PROVIDERS:
            msg = (
                f"Unknown payment_provider {self.payment_provider!r}. "
                f"Available: {', '.join(PAYMENT_PROVIDERS)}"
            )
            raise ValueError(msg)
        if self.payment_provider == "http" and not self.payment_base_url:
            msg = "payment_base_url is required when payment_provider is 'http'"
            raise ValueError(msg)
        if self.payment_timeout <= 0:
            msg = f"payment_timeout must be positive, got {self.payment_timeout}"
            raise ValueError(msg)
        if self.max_workers < 1:
            msg = f"max_workers must be >= 1, got {self.max_workers}"
            raise ValueError(msg)
        if not self.storage_url.startswith(STORAGE_SCHEMES):
            msg = (
                f"Unsupported storage_url {self.storage_url!r}. "
                f"Use one of: {', '.join(STORAGE_SCHEMES)}"
            )
            raise ValueError(msg)
        if self.log_level not in LOG_LEVELS:
            msg = f"Unknown log_level {self.log_level!r}"
            raise ValueError(msg)

    @classmethod
    def from_env(cls, env: EnvManager | None = None) -> OrderSagaConfig:
        """
        Build a config from ORDERSAGA_* environment variables.

        Variables: ORDERSAGA_CURRENCY, ORDERSAGA_PAYMENT_PROVIDER,
        ORDERSAGA_PAYMENT_BASE_URL, ORDERSAGA_PAYMENT_TIMEOUT,
        ORDERSAGA_MAX_WORKERS, ORDERSAGA_STORAGE_URL, ORDERSAGA_LOG_LEVEL,
        ORDERSAGA_JSON_LOGS. Missing variables fall back to defaults.

        Raises:
            ValueError: A variable is set to a value of the wrong type, or the
                resulting config is invalid
        """
        env = env or EnvManager()
        defaults = cls()
        return cls(
            currency=env.get(f"{ENV_PREFIX}CURRENCY", defaults.currency),
            payment_provider=env.get(f"{ENV_PREFIX}PAYMENT_PROVIDER", defaults.payment_provider),
            payment_base_url=env.get(f"{ENV_PREFIX}PAYMENT_BASE_URL", defaults.payment_base_url),
            payment_timeout=env.get_float(
                f"{ENV_PREFIX}PAYMENT_TIMEOUT", defaults.payment_timeout, strict=True
            ),
            max_workers=env.get_int(f"{ENV_PREFIX}MAX_WORKERS", defaults.max_workers, strict=True),
            storage_url=env.get(f"{ENV_PREFIX}STORAGE_URL", defaults.storage_url),
            log_level=env.get(f"{ENV_PREFIX}LOG_LEVEL", defaults.log_level),
            json_logs=env.get_bool(f"{ENV_PREFIX}JSON_LOGS", defaults.json_logs, strict=True),
        )

    @classmethod
    def from_yaml(cls, path: str | Path, env: EnvManager | None = None) -> OrderSagaConfig:
        """
        Build a config from a YAML file.

        Values may reference environment variables (``${VAR:-default}``).
        Unknown keys are rejected so typos do not go unnoticed.
        """
        env = env or EnvManager(auto_load=False)
        raw = yaml.safe_load(Path(path).read_text()) or {}
        if not isinstance(raw, dict):
            msg = f"Config file {path} must contain a mapping"
            raise ValueError(msg)

        data = env.substitute_dict(raw)
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            msg = f"Unknown config keys in {path}: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        for key, convert in (("max_workers", int), ("payment_timeout", float)):
            if key in data:
                try:
                    data[key] = convert(data[key])
                except (TypeError, ValueError) as e:
                    msg = f"{key} in {path} must be a number, got {data[key]!r}"
                    raise ValueError(msg) from e
        if isinstance(data.get("json_logs"), str):
            data["json_logs"] = parse_bool(data["json_logs"], "json_logs")

        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Global configuration
_global_config: OrderSagaConfig | None = None


def get_config() -> OrderSagaConfig:
    """Get the global configuration, creating a default one on first use."""
    global _global_config
    if _global_config is None:
        _global_config = OrderSagaConfig()
        logger.debug("Using default OrderSagaConfig")
    return _global_config


def configure(config: OrderSagaConfig) -> None:
    """Set the global configuration."""
    global _global_config
    _global_config = config
    logger.info(
        "ordersaga configured: storage=%s payment_provider=%s max_workers=%d",
        config.storage_url,
        config.payment_provider,
        config.max_workers,
    )


def reset_config() -> None:
    """Drop the global configuration (mainly for tests)."""
    global _global_config
    _global_config = None
