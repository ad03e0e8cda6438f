"""
Typed exception hierarchy for the exchange kernel.

Every error has a typed class (catch by type, not by message), a stable
``code`` attribute (machine-readable, API-safe) and structured data
(entity ids, requested vs. available amounts) so the outer layers can
render a specific message without parsing strings.

    ExchangeKernelError (base)
    |
    +-- ValidationError                 rejected before any write
    |   +-- InvalidAmountError
    |   +-- InvalidRateError
    |   +-- InvalidCurrencyError
    |   +-- InvalidStrategyError
    |   +-- AmountDivisionByZeroError
    |
    +-- StateConflictError              needs a different request, not a retry
    |   +-- ExceedsRemainingError
    |   +-- InsufficientHoldingError
    |   +-- InsufficientFundsError
    |   +-- RemittanceStateError
    |   +-- RemittanceNotCancellableError
    |   +-- RemittanceNotFullyAllocatedError
    |   +-- NoSettlementCandidatesError
    |
    +-- ConcurrencyError                transient, retry the whole operation
    |   +-- OptimisticLockError
    |
    +-- NotFoundError                   also raised for wrong-tenant lookups
    |   +-- RemittanceNotFoundError
    |   +-- CashBalanceNotFoundError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

Code             | Category
-----------------|-----------------------------------------------------
INVALID_AMOUNT   | zero / negative amount where a positive one is needed
INVALID_RATE     | zero / negative exchange rate
EXCEEDS_REMAINING| settlement larger than an open remittance balance
INSUFFICIENT_*   | sale / withdrawal larger than the position
OPTIMISTIC_LOCK_CONFLICT | versioned compare-and-swap affected zero rows
"""

from decimal import Decimal
from typing import Any


class ExchangeKernelError(Exception):
    """Base exception for all exchange kernel errors."""

    code: str = "EXCHANGE_KERNEL_ERROR"
    retryable: bool = False


# Validation


class ValidationError(ExchangeKernelError):
    """Input rejected before any write."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Amount is zero, negative or otherwise unusable for the operation."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid {field} {value}: {reason}")


class InvalidRateError(ValidationError):
    """Exchange rate is zero or negative."""

    code: str = "INVALID_RATE"

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = str(value)
        super().__init__(f"Invalid {field} {value}: rate must be greater than zero")


class InvalidCurrencyError(ValidationError):
    """Not a valid ISO 4217 currency code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid currency code: {currency!r}")


class InvalidStrategyError(ValidationError):
    """Unknown settlement strategy, or one that cannot run automatically."""

    code: str = "INVALID_STRATEGY"

    def __init__(self, strategy: str, reason: str):
        self.strategy = strategy
        self.reason = reason
        super().__init__(f"Invalid settlement strategy {strategy!r}: {reason}")


class AmountDivisionByZeroError(ValidationError):
    """Attempted to divide an amount by zero."""

    code: str = "DIVISION_BY_ZERO"

    def __init__(self, dividend: Any):
        self.dividend = str(dividend)
        super().__init__(f"Cannot divide {dividend} by zero")


# State conflicts


class StateConflictError(ExchangeKernelError):
    """Business rule violated by the entity's current state."""

    code: str = "STATE_CONFLICT"


class ExceedsRemainingError(StateConflictError):
    """Settlement amount exceeds the remaining balance of a remittance."""

    code: str = "EXCEEDS_REMAINING"

    def __init__(
        self,
        remittance_type: str,
        remittance_id: str,
        requested: Decimal,
        remaining: Decimal,
    ):
        self.remittance_type = remittance_type
        self.remittance_id = str(remittance_id)
        self.requested = str(requested)
        self.remaining = str(remaining)
        super().__init__(
            f"Settlement amount {requested} exceeds {remittance_type} "
            f"remittance {remittance_id} remaining {remaining}"
        )


class InsufficientHoldingError(StateConflictError):
    """Currency sale or adjustment larger than the held quantity."""

    code: str = "INSUFFICIENT_HOLDING"

    def __init__(self, currency: str, requested: Decimal, available: Decimal):
        self.currency = currency
        self.requested = str(requested)
        self.available = str(available)
        super().__init__(
            f"Insufficient balance of {currency}: requested {requested}, "
            f"available {available}"
        )


class InsufficientFundsError(StateConflictError):
    """Client ledger balance cannot cover a debit."""

    code: str = "INSUFFICIENT_FUNDS"

    def __init__(
        self, client_id: str, currency: str, requested: Decimal, available: Decimal
    ):
        self.client_id = str(client_id)
        self.currency = currency
        self.requested = str(requested)
        self.available = str(available)
        super().__init__(
            f"Client {client_id} has insufficient {currency}: requested "
            f"{requested}, available {available}"
        )


class RemittanceStateError(StateConflictError):
    """Remittance is not in a status that permits the operation."""

    code: str = "INVALID_REMITTANCE_STATE"

    def __init__(
        self, remittance_type: str, remittance_id: str, status: str, operation: str
    ):
        self.remittance_type = remittance_type
        self.remittance_id = str(remittance_id)
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {remittance_type} remittance {remittance_id} "
            f"in status {status}"
        )


class RemittanceNotCancellableError(StateConflictError):
    """Cancellation attempted after money was settled or allocated."""

    code: str = "REMITTANCE_NOT_CANCELLABLE"

    def __init__(self, remittance_type: str, remittance_id: str, settled: Decimal):
        self.remittance_type = remittance_type
        self.remittance_id = str(remittance_id)
        self.settled = str(settled)
        verb = "settled" if remittance_type == "outgoing" else "allocated"
        super().__init__(
            f"Cannot cancel: already {verb} {settled} on {remittance_type} "
            f"remittance {remittance_id}"
        )


class RemittanceNotFullyAllocatedError(StateConflictError):
    """Incoming remittance still has an open balance and cannot be paid."""

    code: str = "REMITTANCE_NOT_FULLY_ALLOCATED"

    def __init__(self, remittance_id: str, remaining: Decimal):
        self.remittance_id = str(remittance_id)
        self.remaining = str(remaining)
        super().__init__(
            f"Incoming remittance {remittance_id} is not fully allocated: "
            f"remaining {remaining}"
        )


class NoSettlementCandidatesError(StateConflictError):
    """No outgoing remittance (or no incoming balance) to settle against."""

    code: str = "NO_SETTLEMENT_CANDIDATES"

    def __init__(self, incoming_id: str, reason: str):
        self.incoming_id = str(incoming_id)
        self.reason = reason
        super().__init__(
            f"No settlement candidates for incoming remittance {incoming_id}: {reason}"
        )


# Concurrency


class ConcurrencyError(ExchangeKernelError):
    """Transient conflict with a concurrent writer."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class OptimisticLockError(ConcurrencyError):
    """Versioned compare-and-swap affected zero rows."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.expected_version = expected_version
        super().__init__(
            f"{entity_type} {entity_id} was updated concurrently "
            f"(expected version {expected_version}); please retry"
        )


# Not found


class NotFoundError(ExchangeKernelError):
    """Entity missing or owned by another tenant."""

    code: str = "NOT_FOUND"


class RemittanceNotFoundError(NotFoundError):

    code: str = "REMITTANCE_NOT_FOUND"

    def __init__(self, remittance_type: str, remittance_id: str):
        self.remittance_type = remittance_type
        self.remittance_id = str(remittance_id)
        super().__init__(f"{remittance_type.capitalize()} remittance not found: {remittance_id}")


class CashBalanceNotFoundError(NotFoundError):

    code: str = "CASH_BALANCE_NOT_FOUND"

    def __init__(self, balance_id: str):
        self.balance_id = str(balance_id)
        super().__init__(f"Cash balance not found: {balance_id}")


# Immutability


class ImmutabilityError(ExchangeKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an insert-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
