"""
Module: exchange_engines
Responsibility:
    Pure calculation engines for the exchange kernel: weighted-average-cost
    inventory arithmetic and remittance settlement math (profit, ranking,
    greedy allocation, match scoring, aging).

Architecture position:
    Engines -- zero I/O.  May import exchange_kernel.domain and
    exchange_kernel.exceptions only.  Engines never read the clock;
    callers pass ``as_of`` explicitly.
"""

from exchange_engines.settlement import (
    AgeBucket,
    SettlementCandidate,
    SettlementStrategy,
    SettlementSuggestion,
    equivalent_cad,
    is_fully_settled,
    settlement_profit,
    suggest_settlements,
)
from exchange_engines.tracer import traced_engine
from exchange_engines.wac import (
    HoldingPosition,
    MovementType,
    WACMovement,
    apply_adjustment,
    apply_purchase,
    apply_sale,
)

__all__ = [
    "AgeBucket",
    "HoldingPosition",
    "MovementType",
    "SettlementCandidate",
    "SettlementStrategy",
    "SettlementSuggestion",
    "WACMovement",
    "apply_adjustment",
    "apply_purchase",
    "apply_sale",
    "equivalent_cad",
    "is_fully_settled",
    "settlement_profit",
    "suggest_settlements",
    "traced_engine",
]
