"""ORM models.  Importing this package registers every table on Base.metadata."""

from exchange_kernel.models.cash_balance import (
    CashAdjustment,
    CashBalance,
    CashPayment,
    PaymentMethod,
    PaymentStatus,
)
from exchange_kernel.models.currency_holding import (
    CurrencyHolding,
    WACRecord,
    WACTransactionType,
)
from exchange_kernel.models.ledger import LedgerBalanceGuard, LedgerEntry, LedgerEntryType
from exchange_kernel.models.remittance import (
    OPEN_STATUSES,
    IncomingRemittance,
    OutgoingRemittance,
    RemittanceSettlement,
    RemittanceStatus,
)
from exchange_kernel.models.sequence import SequenceCounter

__all__ = [
    "CashAdjustment",
    "CashBalance",
    "CashPayment",
    "CurrencyHolding",
    "IncomingRemittance",
    "LedgerBalanceGuard",
    "LedgerEntry",
    "LedgerEntryType",
    "OPEN_STATUSES",
    "OutgoingRemittance",
    "PaymentMethod",
    "PaymentStatus",
    "RemittanceSettlement",
    "RemittanceStatus",
    "SequenceCounter",
    "WACRecord",
    "WACTransactionType",
]
