"""Database layer - engine, base classes, column types and concurrency helpers."""

from exchange_kernel.db.base import UUID, Base, TrackedBase, UUIDString, Versioned
from exchange_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from exchange_kernel.db.types import AmountType, validate_currency

__all__ = [
    "AmountType",
    "Base",
    "TrackedBase",
    "UUID",
    "UUIDString",
    "Versioned",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
    "validate_currency",
]
