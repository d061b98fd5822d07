"""
Value objects passed between the API layer and the settlement engine.

Serializers validate request bodies into these frozen dataclasses; the
engine never sees raw request data. Results returned by the engine that are
not model instances are dataclasses too.

Types:
    Actor: Who is acting (role + user id) for authorization and audit
    Split: Platform/seller split computed by the commission calculator
    CreateOrderParams: Order intake input
    OrderCreationResult: Order intake output (order + pending payment)
    RefundRequestParams: Buyer refund request input
    BalanceSnapshot: Seller balance breakdown
    PayoutBatchItemResult: Per-payout outcome of an admin batch action

Usage:
    from settlement.types import Actor, CreateOrderParams

    params = CreateOrderParams(
        product_id=product.id,
        quantity=2,
        shipping_address="12 Marina Road, Lagos",
        payment_method="card",
    )
    actor = Actor.admin(user_id=request.user.id)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from core.exceptions import ValidationError
from settlement.state_machines import ActorRole

if TYPE_CHECKING:
    from settlement.models import Order, Payment


@dataclass(frozen=True)
class Actor:
    """
    The party performing an operation.

    Attributes:
        role: One of ActorRole
        user_id: Acting user's id; None for the system
        name: Label for system actors (task or hook name)

    Example:
        Actor(role=ActorRole.SELLER, user_id=7).label  # "seller:7"
        Actor.system("refund-reversal").label          # "system:refund-reversal"
    """

    role: str
    user_id: int | None = None
    name: str = ""

    @classmethod
    def system(cls, name: str = "engine") -> Actor:
        return cls(role=ActorRole.SYSTEM, name=name)

    @classmethod
    def admin(cls, user_id: int) -> Actor:
        return cls(role=ActorRole.ADMIN, user_id=user_id)

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @property
    def is_system(self) -> bool:
        return self.role == ActorRole.SYSTEM

    @property
    def label(self) -> str:
        if self.user_id is None:
            return f"{self.role}:{self.name or 'anonymous'}"
        return f"{self.role}:{self.user_id}"


@dataclass(frozen=True)
class Split:
    """
    Result of a commission calculation.

    Invariant: platform_cut_cents + seller_net_cents == amount_cents, both
    non-negative.

    Attributes:
        amount_cents: Amount that was split
        platform_cut_cents: Platform share
        seller_net_cents: Seller share
        platform_percentage: Share applied before min/max fee clamping
        scheme_id: Scheme used; None when the fallback share applied
        processing_fee_cents: Provider fee on the amount, reported to the
            seller; not part of either share
    """

    amount_cents: int
    platform_cut_cents: int
    seller_net_cents: int
    platform_percentage: Decimal
    scheme_id: uuid.UUID | None = None
    processing_fee_cents: int = 0

    def __post_init__(self) -> None:
        if self.platform_cut_cents < 0 or self.seller_net_cents < 0:
            raise ValidationError(
                "Split shares cannot be negative",
                error_code="INVALID_SPLIT",
                details={
                    "platform_cut_cents": self.platform_cut_cents,
                    "seller_net_cents": self.seller_net_cents,
                },
            )
        if not 0 <= self.processing_fee_cents <= self.amount_cents:
            raise ValidationError(
                "Processing fee must lie between zero and the amount",
                error_code="INVALID_SPLIT",
                details={
                    "amount_cents": self.amount_cents,
                    "processing_fee_cents": self.processing_fee_cents,
                },
            )
        if self.platform_cut_cents + self.seller_net_cents != self.amount_cents:
            raise ValidationError(
                "Split shares must add up to the amount",
                error_code="INVALID_SPLIT",
                details={
                    "amount_cents": self.amount_cents,
                    "platform_cut_cents": self.platform_cut_cents,
                    "seller_net_cents": self.seller_net_cents,
                },
            )


@dataclass(frozen=True)
class CreateOrderParams:
    """
    Parameters for placing an order.

    Required Attributes:
        product_id: Product being bought
        quantity: Units, at least 1
        shipping_address: Where to deliver

    Optional Attributes:
        payment_method: Method chosen by the buyer
    """

    product_id: uuid.UUID
    quantity: int
    shipping_address: str
    payment_method: str = ""

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValidationError(
                "Quantity must be at least 1",
                details={"quantity": self.quantity},
            )
        if not self.shipping_address.strip():
            raise ValidationError("Shipping address is required")


@dataclass(frozen=True)
class OrderCreationResult:
    """Order intake output: the new order and its pending payment."""

    order: Order
    payment: Payment

    @property
    def payment_reference(self) -> str:
        return self.payment.reference


@dataclass(frozen=True)
class RefundRequestParams:
    """
    Parameters for a buyer refund request.

    ``amount_cents`` defaults to the full payment amount when omitted.
    """

    reason: str
    amount_cents: int | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if self.amount_cents is not None and self.amount_cents <= 0:
            raise ValidationError(
                "Refund amount must be positive",
                details={"amount_cents": self.amount_cents},
            )
        if not self.reason.strip():
            raise ValidationError("A refund reason is required")


@dataclass(frozen=True)
class BalanceSnapshot:
    """
    A seller's balance at one point in time.

    Attributes:
        seller_id: Seller the balance belongs to
        earned_cents: Settleable net of completed payments (after refunds)
        committed_cents: Total of scheduled, processing and completed payouts
        processing_fees_cents: Provider fees on completed payments, for
            reporting; not deducted
        available_cents: earned_cents - committed_cents
    """

    seller_id: int
    earned_cents: int
    committed_cents: int
    processing_fees_cents: int = 0

    @property
    def available_cents(self) -> int:
        return self.earned_cents - self.committed_cents


@dataclass
class PayoutBatchItemResult:
    """
    Outcome for one payout of an admin batch action.

    Attributes:
        payout_id: Payout the action was applied to
        success: Whether the action succeeded
        status: Payout status after the action (when known)
        error / error_code: Failure description
        details: Error details, when the failure carries any
    """

    payout_id: uuid.UUID
    success: bool
    status: str | None = None
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "payout_id": str(self.payout_id),
            "success": self.success,
        }
        if self.status is not None:
            result["status"] = self.status
        if not self.success:
            result["error"] = self.error
            result["error_code"] = self.error_code
            if self.details:
                result["details"] = self.details
        return result
