"""
Configuration loader (``exchange_config.loader``).

Loads a YAML file and parses it into the frozen ``ExchangeConfig`` schema.
Runtime callers go through ``exchange_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range or unparseable values  -> ``ValueError`` naming the key.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from exchange_config.schema import (
    CacheConfig,
    ConcurrencyConfig,
    DatabaseConfig,
    ExchangeConfig,
    LoggingConfig,
    SettlementConfig,
)

_STRATEGIES = frozenset({"FIFO", "LIFO", "BEST_RATE", "MANUAL"})
_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"config section {name!r} must be a mapping")
    return section


def _positive_int(section: dict[str, Any], key: str, default: int, name: str) -> int:
    value = int(section.get(key, default))
    if value < 1:
        raise ValueError(f"{name}.{key} must be >= 1, got {value}")
    return value


def _non_negative_float(section: dict[str, Any], key: str, default: float, name: str) -> float:
    value = float(section.get(key, default))
    if value < 0:
        raise ValueError(f"{name}.{key} cannot be negative, got {value}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    return DatabaseConfig(
        url=str(data.get("url", defaults.url)),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=_positive_int(data, "pool_size", defaults.pool_size, "database"),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
        pool_timeout=_positive_int(data, "pool_timeout", defaults.pool_timeout, "database"),
        pool_recycle=_positive_int(data, "pool_recycle", defaults.pool_recycle, "database"),
    )


def parse_settlement(data: dict[str, Any]) -> SettlementConfig:
    defaults = SettlementConfig()
    raw_tolerance = data.get("completion_tolerance", defaults.completion_tolerance)
    try:
        # str() first: YAML may hand us a float
        tolerance = Decimal(str(raw_tolerance))
    except InvalidOperation:
        raise ValueError(f"settlement.completion_tolerance is not a decimal: {raw_tolerance!r}") from None
    if tolerance < 0:
        raise ValueError("settlement.completion_tolerance cannot be negative")

    strategy = str(data.get("default_strategy", defaults.default_strategy)).upper()
    if strategy not in _STRATEGIES:
        raise ValueError(f"settlement.default_strategy must be one of {sorted(_STRATEGIES)}")

    limit = data.get("suggestion_limit", defaults.suggestion_limit)
    if limit is not None:
        limit = _positive_int(data, "suggestion_limit", 1, "settlement")

    outgoing_prefix = str(data.get("outgoing_prefix", defaults.outgoing_prefix))
    incoming_prefix = str(data.get("incoming_prefix", defaults.incoming_prefix))
    if outgoing_prefix == incoming_prefix:
        raise ValueError("settlement prefixes must differ")

    return SettlementConfig(
        completion_tolerance=tolerance,
        code_digits=_positive_int(data, "code_digits", defaults.code_digits, "settlement"),
        outgoing_prefix=outgoing_prefix,
        incoming_prefix=incoming_prefix,
        default_strategy=strategy,
        suggestion_limit=limit,
    )


def parse_concurrency(data: dict[str, Any]) -> ConcurrencyConfig:
    defaults = ConcurrencyConfig()
    return ConcurrencyConfig(
        cas_max_attempts=_positive_int(data, "cas_max_attempts", defaults.cas_max_attempts, "concurrency"),
        cas_backoff_seconds=_non_negative_float(
            data, "cas_backoff_seconds", defaults.cas_backoff_seconds, "concurrency"
        ),
    )


def parse_cache(data: dict[str, Any]) -> CacheConfig:
    defaults = CacheConfig()
    ttl = _non_negative_float(data, "ttl_seconds", defaults.ttl_seconds, "cache")
    interval = _non_negative_float(
        data, "cleanup_interval_seconds", defaults.cleanup_interval_seconds, "cache"
    )
    if interval == 0:
        raise ValueError("cache.cleanup_interval_seconds must be positive")
    return CacheConfig(
        enabled=bool(data.get("enabled", defaults.enabled)),
        ttl_seconds=ttl,
        cleanup_interval_seconds=interval,
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", LoggingConfig().level)).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}")
    return LoggingConfig(level=level)


def parse_config(data: dict[str, Any]) -> ExchangeConfig:
    """Parse a whole configuration document into an ExchangeConfig."""
    return ExchangeConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        database=parse_database(_section(data, "database")),
        settlement=parse_settlement(_section(data, "settlement")),
        concurrency=parse_concurrency(_section(data, "concurrency")),
        cache=parse_cache(_section(data, "cache")),
        logging=parse_logging(_section(data, "logging")),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; identical data, identical hash."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
