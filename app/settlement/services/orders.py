"""
Order intake and the order state machine.

OrderIntake places an order: it prices the product, computes the revenue
split and creates the pending payment, all in one transaction.

OrderStateMachine is the only writer of Order.status. Every transition
runs under a row lock on the order and triggers the side effects of the
target state in the same transaction:

    shipped   -> shipment created (once per order)
    delivered -> payment completed, delivery date stamped
    cancelled -> pending payment cancelled, open shipment cancelled

Lock order is always order, then shipment, then payment.

Usage:
    from settlement.engine import get_engine

    engine = get_engine()
    result = engine.intake.create_order(buyer, CreateOrderParams(...))
    engine.orders.transition(result.order.id, OrderStatus.CONFIRMED, actor)
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService
from settlement.exceptions import InvalidTransitionError, RequiresRefundError
from settlement.state_machines import (
    ORDER_TRANSITIONS,
    ActorRole,
    OrderStatus,
    PaymentStatus,
    allowed_targets,
)
from settlement.types import Actor, OrderCreationResult

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

    from settlement.models import Order
    from settlement.repositories import (
        OrderRepository,
        PaymentRepository,
        ProductRepository,
    )
    from settlement.services.commission import CommissionCalculator
    from settlement.services.ledger import PaymentLedger
    from settlement.services.shipments import ShipmentStateMachine
    from settlement.types import CreateOrderParams

    OrderNotifier = Callable[[Any, str], None]


class OrderStateMachine(BaseService):
    """
    Owns Order.status.

    Args:
        orders: Order repository
        payments: Payment repository (reads only; writes go through ledger)
        ledger: Payment ledger for payment side effects
        shipment_state_machine: Set by the engine after construction, the
            two state machines call each other
        notifier: Called after commit with (order_id, new_status)
    """

    def __init__(
        self,
        orders: OrderRepository,
        payments: PaymentRepository,
        ledger: PaymentLedger,
        shipment_state_machine: ShipmentStateMachine | None = None,
        notifier: OrderNotifier | None = None,
    ) -> None:
        self.orders = orders
        self.payments = payments
        self.ledger = ledger
        self.shipment_state_machine = shipment_state_machine
        self.notifier = notifier

    @staticmethod
    def allowed_targets(order: Order) -> frozenset[str]:
        return allowed_targets(ORDER_TRANSITIONS, order.status)

    def transition(
        self,
        order_id: Any,
        target: str,
        actor: Actor,
        expected_version: int | None = None,
        reason: str | None = None,
    ) -> Order:
        """
        Move an order to ``target``.

        Authorization is checked by the caller (see
        settlement.permissions.authorize_order_transition).

        Raises:
            NotFoundError: No such order
            StaleRecordError: ``expected_version`` no longer matches
            RequiresRefundError: Cancelling an order whose payment completed
            InvalidTransitionError: ``target`` not reachable from the
                current status
        """
        with self.atomic():
            order = self.orders.get_checked(order_id, expected_version)
            order = self._apply(order, target, actor, reason)
        return order

    def deliver_from_shipment(self, order_id: Any, actor: Actor) -> Order:
        """
        Deliver the parent order of a delivered shipment.

        A no-op when the order is already delivered. Called inside the
        shipment's transaction, which already holds the order row lock.
        """
        with self.atomic():
            order = self.orders.get_for_update(order_id)
            if order.status == OrderStatus.DELIVERED:
                return order
            return self._apply(order, OrderStatus.DELIVERED, actor, None)

    # =========================================================================
    # Internals
    # =========================================================================

    def _apply(
        self, order: Order, target: str, actor: Actor, reason: str | None
    ) -> Order:
        from_status = order.status

        if target == OrderStatus.CANCELLED:
            payment = self.payments.live_for_order(order.id)
            if payment is not None and payment.status == PaymentStatus.COMPLETED:
                raise RequiresRefundError(
                    f"Order {order.id} has a completed payment; request a refund instead",
                    details={
                        "order_id": str(order.id),
                        "payment_id": str(payment.id),
                        "from": from_status,
                    },
                )

        if target not in self.allowed_targets(order):
            raise InvalidTransitionError(
                "order",
                from_status=from_status,
                to_status=target,
                allowed=self.allowed_targets(order),
            )

        if target == OrderStatus.CONFIRMED:
            order.confirm()
        elif target == OrderStatus.SHIPPED:
            order.ship()
        elif target == OrderStatus.DELIVERED:
            order.deliver()
        else:
            order.cancel(reason=reason)
        order.save()

        if target == OrderStatus.SHIPPED:
            self.shipment_state_machine.create_for_order(order)
        elif target == OrderStatus.DELIVERED:
            self._complete_payment(order, actor)
        elif target == OrderStatus.CANCELLED:
            self._cancel_dependents(order, actor, reason)

        # Ledger effects update the payment mirror with a queryset update
        order.refresh_from_db(fields=["payment_status", "version", "updated_at"])

        self.get_logger().info(
            "Order transitioned",
            extra={
                "order_id": str(order.id),
                "from_status": from_status,
                "to_status": target,
                "actor": actor.label,
            },
        )

        if self.notifier is not None:
            order_id, status = order.id, str(target)
            transaction.on_commit(lambda: self.notifier(order_id, status))
        return order

    def _complete_payment(self, order: Order, actor: Actor) -> None:
        payment = self.payments.live_for_order(order.id)
        if payment is None:
            self.get_logger().warning(
                "Delivered order has no payment",
                extra={"order_id": str(order.id)},
            )
            return
        if payment.status == PaymentStatus.PENDING:
            self.ledger.mark_completed(payment.id, actor)

    def _cancel_dependents(self, order: Order, actor: Actor, reason: str | None) -> None:
        payment = self.payments.live_for_order(order.id)
        if payment is not None and payment.status == PaymentStatus.PENDING:
            self.ledger.mark_cancelled(payment.id, reason or "Order cancelled", actor)

        if self.shipment_state_machine is not None:
            self.shipment_state_machine.cancel_for_order(order, reason, actor)


class OrderIntake(BaseService):
    """
    Places orders.

    Args:
        products: Product repository
        orders: Order repository
        calculator: Commission calculator for the split
        ledger: Payment ledger for the pending payment
        expected_delivery_days: Days from placement to the promised delivery
    """

    def __init__(
        self,
        products: ProductRepository,
        orders: OrderRepository,
        calculator: CommissionCalculator,
        ledger: PaymentLedger,
        expected_delivery_days: int = 7,
    ) -> None:
        self.products = products
        self.orders = orders
        self.calculator = calculator
        self.ledger = ledger
        self.expected_delivery_days = expected_delivery_days

    def create_order(self, buyer, params: CreateOrderParams) -> OrderCreationResult:
        """
        Create a pending order and its pending payment.

        The total is price x quantity; the split of that total is computed
        here and never changes afterwards.

        Raises:
            NotFoundError: No such product
            ValidationError: Product is not available
            InvalidRevenueShareSchemeError: Category scheme is misconfigured
        """
        product = self.products.get(params.product_id)
        if not product.is_active:
            raise ValidationError(
                "Product is not available",
                error_code="PRODUCT_UNAVAILABLE",
                details={"product_id": str(product.id)},
            )

        total_amount_cents = product.price_cents * params.quantity
        split = self.calculator.calculate(total_amount_cents, product.category)

        with self.atomic():
            order = self.orders.create(
                buyer=buyer,
                seller_id=product.seller_id,
                product=product,
                quantity=params.quantity,
                total_amount_cents=total_amount_cents,
                currency=product.currency,
                payment_method=params.payment_method,
                shipping_address=params.shipping_address,
                expected_delivery_date=timezone.now()
                + timedelta(days=self.expected_delivery_days),
            )
            payment = self.ledger.create_pending(
                order,
                split,
                actor=Actor(role=ActorRole.BUYER, user_id=buyer.pk),
                method=params.payment_method,
                description=f"Payment for {product.title}",
            )
            order.refresh_from_db(fields=["payment_status", "version"])

        self.get_logger().info(
            "Order created",
            extra={
                "order_id": str(order.id),
                "buyer_id": buyer.pk,
                "seller_id": product.seller_id,
                "total_amount_cents": total_amount_cents,
                "platform_cut_cents": split.platform_cut_cents,
            },
        )
        return OrderCreationResult(order=order, payment=payment)
