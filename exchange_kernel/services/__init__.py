"""Kernel write services.  Each takes the caller's Session and only flushes."""

from exchange_kernel.services.base import SYSTEM_ACTOR_ID, BaseService
from exchange_kernel.services.cash_balance_service import CashBalanceService
from exchange_kernel.services.ledger_service import LedgerService
from exchange_kernel.services.remittance_service import RemittanceService, RemittanceSettings
from exchange_kernel.services.sequence_service import SequenceService
from exchange_kernel.services.wac_service import WACService

__all__ = [
    "BaseService",
    "CashBalanceService",
    "LedgerService",
    "RemittanceService",
    "RemittanceSettings",
    "SYSTEM_ACTOR_ID",
    "SequenceService",
    "WACService",
]
