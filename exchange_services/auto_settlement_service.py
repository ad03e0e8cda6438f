"""
AutoSettlementService -- suggest and execute settlements for an incoming remittance.

Responsibility:
    Ranks the tenant's open outgoing remittances against one incoming
    remittance with a strategy (FIFO, LIFO, BEST_RATE, MANUAL), proposes a
    greedy allocation, and optionally executes it.

Architecture position:
    Services -- orchestration above the kernel.  Takes a session factory,
    not a session: every settlement it executes is its own transaction.

Invariants enforced:
    - Suggestions are computed by the pure engine from a snapshot; the
      authoritative checks happen again under row locks in
      RemittanceService.settle_remittance.
    - Failure isolation: one candidate failing (a concurrent settlement took
      its balance, a lock conflict) is logged and skipped, and the batch
      goes on.  The result reports settled vs. requested counts and every
      failure, so partial success is never silent.

Failure modes:
    - RemittanceNotFoundError for an unknown or other-tenant incoming id.
    - NoSettlementCandidatesError when the incoming has nothing left to
      allocate, or auto_settle finds no open outgoing remittance.
    - InvalidStrategyError for auto_settle with MANUAL (the operator picks).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from exchange_engines.settlement import (
    SettlementCandidate,
    SettlementStrategy,
    SettlementSuggestion,
    suggest_settlements,
)
from exchange_kernel.db.engine import session_scope
from exchange_kernel.domain.clock import Clock, SystemClock
from exchange_kernel.domain.dtos import UnsettledSummary
from exchange_kernel.domain.values import Amount
from exchange_kernel.exceptions import (
    ExchangeKernelError,
    InvalidStrategyError,
    NoSettlementCandidatesError,
    RemittanceStateError,
)
from exchange_kernel.logging_config import LogContext, get_logger
from exchange_kernel.models.remittance import OPEN_STATUSES, RemittanceSettlement
from exchange_kernel.selectors.remittance_selector import RemittanceSelector
from exchange_kernel.services.remittance_service import (
    INCOMING,
    RemittanceService,
    RemittanceSettings,
)

logger = get_logger("services.auto_settlement")


@dataclass(frozen=True)
class AutoSettlementFailure:
    outgoing_remittance_id: UUID
    requested_amount_irr: Amount
    error_code: str
    message: str


@dataclass(frozen=True)
class AutoSettlementResult:
    """Outcome of one auto_settle batch."""

    incoming_remittance_id: UUID
    strategy: SettlementStrategy
    settlements: tuple[RemittanceSettlement, ...]
    total_settled_irr: Amount
    total_profit_cad: Amount
    remaining_irr: Amount
    requested_count: int
    failures: tuple[AutoSettlementFailure, ...] = field(default_factory=tuple)

    @property
    def settlement_count(self) -> int:
        return len(self.settlements)

    @property
    def fully_succeeded(self) -> bool:
        return not self.failures and self.settlement_count == self.requested_count


class AutoSettlementService:
    """
    Settlement suggestions and batch execution.

    Usage:
        service = AutoSettlementService(get_session_factory(), clock, settings)
        result = service.auto_settle(tenant_id, incoming_id, user_id, "FIFO")
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        settings: RemittanceSettings | None = None,
        *,
        default_strategy: SettlementStrategy | str = SettlementStrategy.FIFO,
        suggestion_limit: int | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._settings = settings or RemittanceSettings()
        self._default_strategy = SettlementStrategy.parse(default_strategy)
        self._suggestion_limit = suggestion_limit

    def _suggest(
        self,
        session: Session,
        tenant_id: UUID,
        incoming_id: UUID,
        strategy: SettlementStrategy,
        limit: int | None,
    ) -> tuple[SettlementSuggestion, ...]:
        incoming = RemittanceService(session, self._clock, self._settings).get_incoming(
            tenant_id, incoming_id
        )
        if incoming.status not in OPEN_STATUSES:
            raise NoSettlementCandidatesError(
                str(incoming_id), f"incoming remittance is {incoming.status}"
            )
        if not incoming.remaining_irr.is_positive:
            raise NoSettlementCandidatesError(str(incoming_id), "nothing left to allocate")

        candidates = [
            SettlementCandidate(
                remittance_id=o.id,
                remittance_code=o.remittance_code,
                created_at=o.created_at,
                remaining_irr=o.remaining_irr,
                buy_rate_cad=o.buy_rate_cad,
            )
            for o in RemittanceSelector(session).unsettled_outgoing(tenant_id)
        ]
        return suggest_settlements(
            candidates=candidates,
            incoming_remaining=incoming.remaining_irr,
            sell_rate=incoming.sell_rate_cad,
            strategy=strategy,
            as_of=self._clock.now(),
            limit=limit,
        )

    def get_settlement_suggestions(
        self,
        tenant_id: UUID,
        incoming_id: UUID,
        strategy: SettlementStrategy | str | None = None,
        limit: int | None = None,
    ) -> tuple[SettlementSuggestion, ...]:
        """
        Ranked allocation proposal; empty when no outgoing remittance is open.

        MANUAL returns candidates in FIFO order for the operator to pick from.
        """
        strategy = SettlementStrategy.parse(strategy) if strategy else self._default_strategy
        limit = limit if limit is not None else self._suggestion_limit
        with session_scope(self._session_factory) as session:
            return self._suggest(session, tenant_id, incoming_id, strategy, limit)

    def auto_settle(
        self,
        tenant_id: UUID,
        incoming_id: UUID,
        user_id: UUID,
        strategy: SettlementStrategy | str | None = None,
    ) -> AutoSettlementResult:
        """
        Execute every suggestion in ranked order, one transaction each.

        Kernel errors and database errors on a single candidate are logged
        and recorded in ``failures``; anything else propagates.
        Every log line of the run carries the incoming id as correlation_id
        along with the tenant and actor.
        """
        strategy = SettlementStrategy.parse(strategy) if strategy else self._default_strategy
        if strategy is SettlementStrategy.MANUAL:
            raise InvalidStrategyError(strategy.value, "manual settlement must be done one by one")

        with LogContext.bind(correlation_id=incoming_id, tenant_id=tenant_id, actor_id=user_id):
            return self._execute(tenant_id, incoming_id, user_id, strategy)

    def _execute(
        self,
        tenant_id: UUID,
        incoming_id: UUID,
        user_id: UUID,
        strategy: SettlementStrategy,
    ) -> AutoSettlementResult:
        suggestions = self.get_settlement_suggestions(tenant_id, incoming_id, strategy, limit=None)
        if not suggestions:
            raise NoSettlementCandidatesError(
                str(incoming_id), "no pending outgoing remittances to settle"
            )

        settlements: list[RemittanceSettlement] = []
        failures: list[AutoSettlementFailure] = []
        for suggestion in suggestions:
            try:
                with session_scope(self._session_factory) as session:
                    settlement = RemittanceService(
                        session, self._clock, self._settings
                    ).settle_remittance(
                        tenant_id=tenant_id,
                        outgoing_id=suggestion.outgoing_remittance_id,
                        incoming_id=incoming_id,
                        amount_irr=suggestion.suggested_amount_irr,
                        user_id=user_id,
                        notes=f"Auto-settled ({strategy.value})",
                    )
                settlements.append(settlement)
            except (ExchangeKernelError, SQLAlchemyError) as exc:
                code = getattr(exc, "code", type(exc).__name__)
                logger.warning(
                    "auto_settle_candidate_failed",
                    extra={
                        "incoming_id": str(incoming_id),
                        "outgoing_id": str(suggestion.outgoing_remittance_id),
                        "amount_irr": str(suggestion.suggested_amount_irr),
                        "error_code": code,
                    },
                    exc_info=True,
                )
                failures.append(
                    AutoSettlementFailure(
                        outgoing_remittance_id=suggestion.outgoing_remittance_id,
                        requested_amount_irr=suggestion.suggested_amount_irr,
                        error_code=code,
                        message=str(exc),
                    )
                )
                if isinstance(exc, RemittanceStateError) and exc.remittance_type == INCOMING:
                    # The incoming itself was closed under us; nothing else can succeed
                    break

        with session_scope(self._session_factory) as session:
            remaining = RemittanceService(session, self._clock, self._settings).get_incoming(
                tenant_id, incoming_id
            ).remaining_irr

        result = AutoSettlementResult(
            incoming_remittance_id=incoming_id,
            strategy=strategy,
            settlements=tuple(settlements),
            total_settled_irr=sum((s.settled_amount_irr for s in settlements), Amount.zero()),
            total_profit_cad=sum((s.profit_cad for s in settlements), Amount.zero()),
            remaining_irr=remaining,
            requested_count=len(suggestions),
            failures=tuple(failures),
        )
        logger.info(
            "auto_settle_completed",
            extra={
                "incoming_id": str(incoming_id),
                "strategy": strategy.value,
                "settlement_count": result.settlement_count,
                "requested_count": result.requested_count,
                "failure_count": len(failures),
                "total_settled_irr": str(result.total_settled_irr),
                "remaining_irr": str(remaining),
            },
        )
        return result

    def get_unsettled_summary(
        self, tenant_id: UUID, as_of: datetime | None = None
    ) -> UnsettledSummary:
        with session_scope(self._session_factory) as session:
            return RemittanceSelector(session).unsettled_summary(
                tenant_id, as_of or self._clock.now()
            )
