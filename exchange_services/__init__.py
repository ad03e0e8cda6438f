"""
exchange_services -- orchestrators that own transaction boundaries.

Each service here takes a session factory and opens one ``session_scope``
per independent unit of work.
"""

from exchange_services.auto_settlement_service import (
    AutoSettlementFailure,
    AutoSettlementResult,
    AutoSettlementService,
)
from exchange_services.cash_adjustment_service import CashAdjustmentService

__all__ = [
    "AutoSettlementFailure",
    "AutoSettlementResult",
    "AutoSettlementService",
    "CashAdjustmentService",
]
