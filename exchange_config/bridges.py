"""
Config -> Kernel Bridges.

Functions that convert ExchangeConfig sections into kernel and service
inputs.  They live in exchange_config (the producer) because the kernel
must never import exchange_config.

Usage:
    from exchange_config import get_active_config
    from exchange_config.bridges import (
        build_auto_settlement_service,
        build_inventory_cache,
        init_engine_from_config,
    )

    config = get_active_config()
    init_engine_from_config(config)
    with build_inventory_cache(config) as cache:
        ...
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from exchange_config.schema import ExchangeConfig
from exchange_engines.settlement import SettlementStrategy
from exchange_kernel.db.engine import init_engine_from_url
from exchange_kernel.db.optimistic import CASRetryPolicy
from exchange_kernel.domain.clock import Clock
from exchange_kernel.domain.values import Amount
from exchange_kernel.logging_config import configure_logging
from exchange_kernel.services.remittance_service import RemittanceSettings
from exchange_kernel.utils.cache import TTLCache
from exchange_services.auto_settlement_service import AutoSettlementService
from exchange_services.cash_adjustment_service import CashAdjustmentService


def init_engine_from_config(config: ExchangeConfig) -> Engine:
    """Initialize the kernel engine and apply the configured log level."""
    # Before the engine: configure_logging is idempotent and the engine calls it too
    configure_logging(level=config.logging.level)
    db = config.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
    return engine


def build_remittance_settings(config: ExchangeConfig) -> RemittanceSettings:
    s = config.settlement
    return RemittanceSettings(
        completion_tolerance=Amount(s.completion_tolerance),
        code_digits=s.code_digits,
        outgoing_prefix=s.outgoing_prefix,
        incoming_prefix=s.incoming_prefix,
    )


def build_cas_policy(config: ExchangeConfig) -> CASRetryPolicy:
    return CASRetryPolicy(
        max_attempts=config.concurrency.cas_max_attempts,
        backoff_seconds=config.concurrency.cas_backoff_seconds,
    )


def build_inventory_cache(config: ExchangeConfig) -> TTLCache | None:
    """
    A new, not yet started inventory cache, or None when caching is disabled.

    The caller owns the lifecycle: ``start()`` it (or use it as a context
    manager) and ``close()`` it on shutdown.
    """
    if not config.cache.enabled:
        return None
    return TTLCache(
        ttl_seconds=config.cache.ttl_seconds,
        cleanup_interval_seconds=config.cache.cleanup_interval_seconds,
        name="inventory",
    )


def build_auto_settlement_service(
    config: ExchangeConfig,
    session_factory: sessionmaker[Session],
    clock: Clock | None = None,
) -> AutoSettlementService:
    return AutoSettlementService(
        session_factory,
        clock,
        build_remittance_settings(config),
        default_strategy=SettlementStrategy.parse(config.settlement.default_strategy),
        suggestion_limit=config.settlement.suggestion_limit,
    )


def build_cash_adjustment_service(
    config: ExchangeConfig,
    session_factory: sessionmaker[Session],
    clock: Clock | None = None,
) -> CashAdjustmentService:
    return CashAdjustmentService(session_factory, clock, build_cas_policy(config))
