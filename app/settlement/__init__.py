"""
Settlement app: the order-to-settlement engine of the marketplace.

This app handles:
- Order and shipment lifecycles (django-fsm state machines)
- The platform/seller revenue split fixed at order creation
- Payments, refund adjustments and their audit trail
- Refund requests and admin decisions
- Seller balances and payouts

Related apps:
    - core: base models, mixins, exceptions and service helpers

Usage:
    from settlement.engine import get_engine

    engine = get_engine()
    result = engine.intake.create_order(params, buyer_id=request.user.id)
    engine.orders.transition(result.order.id, OrderStatus.CONFIRMED, actor)
"""
