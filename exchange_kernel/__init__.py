"""
Exchange Kernel - remittance settlement, client ledger and cash balances.

- Decimal-only money arithmetic (Amount)
- Append-only ledger, cash adjustment, WAC and settlement records
- Row-locked remittance settlement, version-checked cash balances
- Weighted-average-cost currency inventory
"""

__version__ = "0.1.0"
