"""Read-only query selectors."""

from exchange_kernel.selectors.cash_balance_selector import CashBalanceSelector
from exchange_kernel.selectors.ledger_selector import LedgerSelector
from exchange_kernel.selectors.remittance_selector import RemittanceSelector
from exchange_kernel.selectors.wac_selector import WACSelector

__all__ = [
    "CashBalanceSelector",
    "LedgerSelector",
    "RemittanceSelector",
    "WACSelector",
]
