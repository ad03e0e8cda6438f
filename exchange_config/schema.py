"""
ExchangeConfig schema.

Frozen dataclasses that YAML is parsed into by the loader.  Every section
has defaults matching ``defaults.yaml`` so a partial file only overrides
what it names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///exchange_kernel.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class SettlementConfig:
    """Remittance code format and completion tolerance."""

    completion_tolerance: Decimal = Decimal("0.01")
    code_digits: int = 6
    outgoing_prefix: str = "OUT"
    incoming_prefix: str = "IN"
    default_strategy: str = "FIFO"
    suggestion_limit: int | None = None


@dataclass(frozen=True)
class ConcurrencyConfig:
    cas_max_attempts: int = 3
    cas_backoff_seconds: float = 0.05


@dataclass(frozen=True)
class CacheConfig:
    enabled: bool = True
    ttl_seconds: float = 300.0
    cleanup_interval_seconds: float = 60.0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class ExchangeConfig:
    """Runtime configuration artifact returned by ``get_active_config()``."""

    config_id: str = "default"
    version: int = 1
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
