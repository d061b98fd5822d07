"""
Settlement-specific exceptions.

Every error a settlement operation can raise is typed, carries a
machine-readable error code and maps to a fixed HTTP status through
core.exceptions.api_exception_handler.

Exception Hierarchy:
    SettlementError (base for business rule violations, 400)
    ├── InvalidTransitionError - Transition not in the table
    ├── RequiresRefundError - Cancelling an order whose payment completed
    ├── IneligibleOrderError - Refund requested for an undelivered order
    ├── RefundAlreadyExistsError - Order already has a non-rejected refund
    ├── RefundExceedsPaymentError - Refund larger than what can be refunded
    ├── DuplicatePaymentError - Order already has a live payment
    ├── InvalidPaymentStateError - Ledger operation in the wrong payment state
    ├── PaymentAllocatedError - Refund against money settling to the seller
    ├── InsufficientBalanceError - Payout larger than the available balance
    └── InvalidRevenueShareSchemeError - Scheme percentages do not sum to 1

    StaleRecordError - Optimistic locking conflict (ConflictError, 409)
    LockAcquisitionError - Distributed lock timeout (ConflictError, 409)
    PaymentProviderError - Provider call failed (ExternalServiceError, 502)
    LedgerInconsistencyError - Stored money no longer adds up
        (InternalConsistencyError, 500, logged CRITICAL)

Usage:
    from settlement.exceptions import InvalidTransitionError

    raise InvalidTransitionError(
        "order", from_status="delivered", to_status="confirmed", allowed=[]
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    InternalConsistencyError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any


# =============================================================================
# Business Rule Violations
# =============================================================================


class SettlementError(BaseApplicationError):
    """
    Base exception for settlement business rule violations.

    Each subclass names the rule it enforces in ``rule``; the rule is added
    to ``details`` so API clients can tell violations apart without parsing
    messages.
    """

    default_error_code: str = "SETTLEMENT_ERROR"
    rule: str = ""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        if self.rule:
            details.setdefault("rule", self.rule)
        super().__init__(message, error_code=error_code, details=details)


class InvalidTransitionError(SettlementError):
    """
    Raised when a status change is not in the entity's transition table.

    Example:
        raise InvalidTransitionError(
            "order",
            from_status=OrderStatus.DELIVERED,
            to_status=OrderStatus.CONFIRMED,
            allowed=order.allowed_targets,
        )
    """

    default_error_code: str = "INVALID_TRANSITION"
    rule = "transition_table"

    def __init__(
        self,
        entity: str,
        from_status: str,
        to_status: str,
        allowed: Iterable[str] = (),
    ):
        self.entity = entity
        self.from_status = str(from_status)
        self.to_status = str(to_status)
        super().__init__(
            f"Cannot move {entity} from '{self.from_status}' to '{self.to_status}'",
            details={
                "entity": entity,
                "from": self.from_status,
                "to": self.to_status,
                "allowed": sorted(str(status) for status in allowed),
            },
        )


class RequiresRefundError(SettlementError):
    """Raised when cancelling an order whose payment already completed."""

    default_error_code: str = "REQUIRES_REFUND"
    rule = "completed_payment_requires_refund"


class IneligibleOrderError(SettlementError):
    """Raised when a refund is requested for an order that is not delivered."""

    default_error_code: str = "ORDER_NOT_ELIGIBLE_FOR_REFUND"
    rule = "refund_requires_delivered_order"


class RefundAlreadyExistsError(SettlementError):
    """Raised when an order already has a refund that was not rejected."""

    default_error_code: str = "REFUND_ALREADY_EXISTS"
    rule = "one_active_refund_per_order"


class RefundExceedsPaymentError(SettlementError):
    """Raised when a refund amount is above what the payment can give back."""

    default_error_code: str = "REFUND_EXCEEDS_PAYMENT"
    rule = "refund_within_payment"

    def __init__(self, requested_cents: int, maximum_cents: int):
        self.requested_cents = requested_cents
        self.maximum_cents = maximum_cents
        super().__init__(
            f"Refund of {requested_cents} exceeds the refundable {maximum_cents}",
            details={
                "requested_cents": requested_cents,
                "maximum_cents": maximum_cents,
            },
        )


class DuplicatePaymentError(SettlementError):
    """Raised when an order already has a payment that is not cancelled."""

    default_error_code: str = "DUPLICATE_PAYMENT"
    rule = "one_live_payment_per_order"


class InvalidPaymentStateError(SettlementError):
    """Raised when a ledger operation is attempted in the wrong payment state."""

    default_error_code: str = "INVALID_PAYMENT_STATE"
    rule = "payment_state"

    def __init__(self, payment_id: Any, current_status: str, operation: str):
        self.current_status = str(current_status)
        super().__init__(
            f"Cannot {operation} payment {payment_id} in '{self.current_status}' state",
            details={
                "payment_id": str(payment_id),
                "current_status": self.current_status,
                "operation": operation,
            },
        )


class PaymentAllocatedError(SettlementError):
    """
    Raised when a refund would take a payment's settleable net below the
    part live payouts have claimed.

    That part has left, or is leaving, the platform, so a refund can only
    come out of what is still unclaimed.
    """

    default_error_code: str = "PAYMENT_ALLOCATED_TO_PAYOUT"
    rule = "refund_before_payout"


class InsufficientBalanceError(SettlementError):
    """
    Raised when a payout asks for more than the seller's available balance.

    ``available_cents`` is returned to the client so it can offer the
    amount that would succeed.
    """

    default_error_code: str = "INSUFFICIENT_BALANCE"
    rule = "payout_within_balance"

    def __init__(self, seller_id: Any, requested_cents: int, available_cents: int):
        self.requested_cents = requested_cents
        self.available_cents = available_cents
        super().__init__(
            "Insufficient balance for payout",
            details={
                "seller_id": str(seller_id),
                "requested_cents": requested_cents,
                "available_cents": available_cents,
            },
        )


class InvalidRevenueShareSchemeError(SettlementError):
    """Raised when a scheme's platform and seller percentages do not sum to 1."""

    default_error_code: str = "INVALID_REVENUE_SHARE_SCHEME"
    rule = "scheme_percentages_sum_to_one"


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class StaleRecordError(ConflictError):
    """
    Raised when optimistic locking detects a concurrent modification.

    The client should reload the entity and retry with the new version.
    """

    default_error_code: str = "STALE_RECORD"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired in time.

    Another process is working on the same seller; the request may be
    retried.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


# =============================================================================
# External & Integrity Exceptions
# =============================================================================


class PaymentProviderError(ExternalServiceError):
    """
    Raised when the payment provider fails a reversal or transfer.

    Attributes:
        is_retryable: True for transient failures (timeouts, rate limits);
            the Celery tasks retry only these.
    """

    default_error_code: str = "PAYMENT_PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        is_retryable: bool = True,
    ):
        super().__init__(message, error_code=error_code, details=details)
        self.is_retryable = is_retryable


class LedgerInconsistencyError(InternalConsistencyError):
    """
    Raised when stored money no longer adds up.

    Examples: a negative available balance, or free payments that do not
    sum to the computed balance. Never corrected in code.
    """

    default_error_code: str = "LEDGER_INCONSISTENCY"


__all__ = [
    "DuplicatePaymentError",
    "IneligibleOrderError",
    "InsufficientBalanceError",
    "InvalidPaymentStateError",
    "InvalidRevenueShareSchemeError",
    "InvalidTransitionError",
    "LedgerInconsistencyError",
    "LockAcquisitionError",
    "PaymentAllocatedError",
    "PaymentProviderError",
    "RefundAlreadyExistsError",
    "RefundExceedsPaymentError",
    "RequiresRefundError",
    "SettlementError",
    "StaleRecordError",
]
