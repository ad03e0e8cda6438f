"""
Module: exchange_engines.settlement
Responsibility:
    Pure settlement math: CAD equivalents, spread profit, completion status,
    candidate ranking by strategy, greedy allocation of an incoming
    remittance across outgoing debts, match scores and display reasons.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock access (``as_of``
    is passed in).  RemittanceService and AutoSettlementService call it.

Invariants enforced:
    - profit = amount / buy_rate - amount / sell_rate (both rates IRR per CAD).
    - Allocation is first-fit over the ranked list: each candidate receives
      min(candidate.remaining, still_to_allocate) until the incoming is
      exhausted or candidates run out.  Deterministic for a given ranking.
    - Sum of suggested amounts never exceeds the incoming remaining.
    - Match score is in [0, 100] and never influences ordering.

Failure modes:
    - InvalidStrategyError for an unknown strategy name.
    - InvalidRateError for non-positive rates.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from exchange_engines.tracer import traced_engine
from exchange_kernel.domain.clock import as_utc
from exchange_kernel.domain.values import Amount
from exchange_kernel.exceptions import InvalidRateError, InvalidStrategyError
from exchange_kernel.logging_config import get_logger

logger = get_logger("engines.settlement")

DEFAULT_COMPLETION_TOLERANCE = Amount("0.01")

# Match score weights
BASE_SCORE = Decimal("50")
MAX_AGE_BONUS = Decimal("30")
MAX_PROFIT_BONUS = Decimal("20")
FULL_SETTLEMENT_BONUS = Decimal("10")
MAX_SCORE = Decimal("100")

HIGH_PROFIT_THRESHOLD_CAD = Amount("100")


class SettlementStrategy(str, Enum):
    """How candidate outgoing remittances are ordered."""

    FIFO = "FIFO"
    LIFO = "LIFO"
    BEST_RATE = "BEST_RATE"
    MANUAL = "MANUAL"

    @classmethod
    def parse(cls, value: SettlementStrategy | str | None) -> SettlementStrategy:
        if value is None:
            return cls.FIFO
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise InvalidStrategyError(str(value), "unknown strategy") from None


# ---------------------------------------------------------------------------
# Settlement arithmetic
# ---------------------------------------------------------------------------


def equivalent_cad(amount_irr: Amount, rate_irr_per_cad: Amount) -> Amount:
    """CAD value of an IRR amount at the given IRR-per-CAD rate."""
    if not rate_irr_per_cad.is_positive:
        raise InvalidRateError("rate", rate_irr_per_cad)
    return (amount_irr / rate_irr_per_cad).quantize_money()


def settlement_profit(amount_irr: Amount, buy_rate: Amount, sell_rate: Amount) -> Amount:
    """
    Spread profit of settling ``amount_irr``.

    Cost to acquire at the buy rate minus revenue from disbursing at the
    sell rate; positive when buy_rate < sell_rate.
    """
    if not buy_rate.is_positive:
        raise InvalidRateError("buy_rate", buy_rate)
    if not sell_rate.is_positive:
        raise InvalidRateError("sell_rate", sell_rate)
    return (amount_irr / buy_rate - amount_irr / sell_rate).quantize_money()


def profit_margin(buy_rate: Amount, sell_rate: Amount) -> Amount:
    """CAD profit per IRR unit: 1/buy - 1/sell."""
    return Amount(1) / buy_rate - Amount(1) / sell_rate


def is_fully_settled(remaining: Amount, tolerance: Amount = DEFAULT_COMPLETION_TOLERANCE) -> bool:
    return remaining <= tolerance


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettlementCandidate:
    """Snapshot of an open outgoing remittance."""

    remittance_id: UUID
    remittance_code: str
    created_at: datetime
    remaining_irr: Amount
    buy_rate_cad: Amount


@dataclass(frozen=True)
class SettlementSuggestion:
    outgoing_remittance_id: UUID
    remittance_code: str
    created_at: datetime
    outgoing_remaining_irr: Amount
    buy_rate_cad: Amount
    suggested_amount_irr: Amount
    estimated_profit_cad: Amount
    days_outstanding: int
    match_score: Decimal
    reason: str

    @property
    def settles_fully(self) -> bool:
        return self.suggested_amount_irr >= self.outgoing_remaining_irr


def days_outstanding(created_at: datetime, as_of: datetime) -> int:
    return max(0, (as_utc(as_of) - as_utc(created_at)).days)


def rank_candidates(
    candidates: Sequence[SettlementCandidate],
    strategy: SettlementStrategy,
    sell_rate: Amount,
) -> list[SettlementCandidate]:
    """
    Order candidates for allocation.

    FIFO oldest first, LIFO newest first, BEST_RATE highest 1/buy - 1/sell
    first.  MANUAL has no automatic order of its own and falls back to FIFO
    so the operator sees the oldest debt at the top.  Code breaks ties.
    """
    match strategy:
        case SettlementStrategy.FIFO | SettlementStrategy.MANUAL:
            return sorted(candidates, key=lambda c: (as_utc(c.created_at), c.remittance_code))
        case SettlementStrategy.LIFO:
            return sorted(
                candidates,
                key=lambda c: (as_utc(c.created_at), c.remittance_code),
                reverse=True,
            )
        case SettlementStrategy.BEST_RATE:
            return sorted(
                candidates,
                key=lambda c: (-profit_margin(c.buy_rate_cad, sell_rate).value,
                               as_utc(c.created_at), c.remittance_code),
            )
        case _:
            raise InvalidStrategyError(str(strategy), "unknown strategy")


def match_score(
    candidate: SettlementCandidate,
    incoming_remaining: Amount,
    sell_rate: Amount,
    age_days: int,
) -> Decimal:
    """Display score 0-100: 50 base, age up to 30, profit up to 20, full settlement 10."""
    score = BASE_SCORE
    if age_days > 0:
        score += min(Decimal(age_days), MAX_AGE_BONUS)
    margin_pct = profit_margin(candidate.buy_rate_cad, sell_rate).value * 100
    if margin_pct > 0:
        score += min(margin_pct * 10, MAX_PROFIT_BONUS)
    if candidate.remaining_irr <= incoming_remaining:
        score += FULL_SETTLEMENT_BONUS
    return min(score, MAX_SCORE)


def match_reason(
    candidate: SettlementCandidate,
    strategy: SettlementStrategy,
    sell_rate: Amount,
    age_days: int,
) -> str:
    match strategy:
        case SettlementStrategy.FIFO:
            if age_days > 30:
                return "Oldest debt - outstanding for over 30 days"
            if age_days > 14:
                return f"Priority - outstanding for {age_days} days"
            return "FIFO order - created " + as_utc(candidate.created_at).strftime("%b %d")
        case SettlementStrategy.BEST_RATE:
            potential = profit_margin(candidate.buy_rate_cad, sell_rate) * candidate.remaining_irr
            if potential > HIGH_PROFIT_THRESHOLD_CAD:
                return "High profit potential"
            return "Optimized for profit"
        case _:
            return f"Suggested based on {strategy.value} strategy"


@traced_engine(
    "settlement_suggestion",
    "1.0",
    fingerprint_fields=("incoming_remaining", "sell_rate", "strategy", "limit"),
)
def suggest_settlements(
    *,
    candidates: Sequence[SettlementCandidate],
    incoming_remaining: Amount,
    sell_rate: Amount,
    strategy: SettlementStrategy,
    as_of: datetime,
    limit: int | None = None,
) -> tuple[SettlementSuggestion, ...]:
    """
    Greedy first-fit allocation of ``incoming_remaining`` over ranked candidates.

    Candidates with nothing remaining are skipped.  ``limit`` caps the
    number of suggestions, not the amount.
    """
    if not sell_rate.is_positive:
        raise InvalidRateError("sell_rate", sell_rate)

    ranked = rank_candidates(candidates, strategy, sell_rate)
    still_to_allocate = incoming_remaining
    suggestions: list[SettlementSuggestion] = []

    for candidate in ranked:
        if not still_to_allocate.is_positive:
            break
        if limit is not None and len(suggestions) >= limit:
            break
        if not candidate.remaining_irr.is_positive:
            continue

        amount = min(candidate.remaining_irr, still_to_allocate)
        age_days = days_outstanding(candidate.created_at, as_of)
        suggestions.append(
            SettlementSuggestion(
                outgoing_remittance_id=candidate.remittance_id,
                remittance_code=candidate.remittance_code,
                created_at=candidate.created_at,
                outgoing_remaining_irr=candidate.remaining_irr,
                buy_rate_cad=candidate.buy_rate_cad,
                suggested_amount_irr=amount,
                estimated_profit_cad=settlement_profit(amount, candidate.buy_rate_cad, sell_rate),
                days_outstanding=age_days,
                match_score=match_score(candidate, incoming_remaining, sell_rate, age_days),
                reason=match_reason(candidate, strategy, sell_rate, age_days),
            )
        )
        still_to_allocate = still_to_allocate - amount

    logger.debug(
        "settlement_suggestions_computed",
        extra={
            "strategy": strategy.value,
            "candidate_count": len(candidates),
            "suggestion_count": len(suggestions),
            "unallocated_irr": str(still_to_allocate),
        },
    )
    return tuple(suggestions)


# ---------------------------------------------------------------------------
# Aging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgeBucket:
    """Contiguous range of days; ``max_days`` None is unbounded."""

    name: str
    min_days: int
    max_days: int | None

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        return self.max_days is None or age_days <= self.max_days


UNSETTLED_AGE_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket("0-7", 0, 7),
    AgeBucket("8-14", 8, 14),
    AgeBucket("15-30", 15, 30),
    AgeBucket("30+", 31, None),
)


def bucket_for(age_days: int, buckets: Sequence[AgeBucket] = UNSETTLED_AGE_BUCKETS) -> AgeBucket:
    for bucket in buckets:
        if bucket.contains(age_days):
            return bucket
    return buckets[0]
