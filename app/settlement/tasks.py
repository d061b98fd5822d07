"""
Celery tasks for settlement side effects.

This module provides async tasks for:
- Executing provider reversals for approved refunds
- Sending individual payouts
- Periodic dispatch of due scheduled payouts (via celery-beat)
- Order status notifications

Tasks are dispatched after the surrounding transaction commits (see
settlement.engine), so a worker never sees uncommitted rows.

Usage:
    from settlement.tasks import process_payout

    process_payout.delay(str(payout_id))
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.utils import timezone

from core.exceptions import BaseApplicationError
from settlement.exceptions import LockAcquisitionError, PaymentProviderError

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_PROVIDER_RETRIES = 5

# Processing payouts older than this are dispatched again
STUCK_PROCESSING_THRESHOLD_MINUTES = 30

BATCH_SIZE = 100


def _parse_id(value: str) -> UUID | None:
    try:
        return UUID(str(value))
    except ValueError:
        logger.error("Invalid id format", extra={"value": value})
        return None


# =============================================================================
# Refunds
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(PaymentProviderError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_PROVIDER_RETRIES},
    acks_late=True,
)
def execute_refund_reversal(self, refund_id: str) -> dict:
    """
    Return an approved refund to the buyer through the payment provider.

    Transient provider errors are raised so Celery retries with backoff;
    the refund stays approved meanwhile. Permanent errors are reported and
    left for an admin, with the error recorded on the refund.

    Returns:
        Dict with status "completed", "failed" or "not_found"
    """
    from settlement.engine import get_engine

    parsed_id = _parse_id(refund_id)
    if parsed_id is None:
        return {"status": "not_found", "refund_id": refund_id}

    try:
        refund = get_engine().refunds.execute_reversal(parsed_id)
    except PaymentProviderError as exc:
        if exc.is_retryable:
            raise
        logger.error(
            "Refund reversal failed permanently",
            extra={"refund_id": refund_id, "error": exc.message},
        )
        return {"status": "failed", "refund_id": refund_id, "error": exc.message}
    except BaseApplicationError as exc:
        logger.error(
            "Refund reversal could not run",
            extra={"refund_id": refund_id, "error_code": exc.error_code},
        )
        return {
            "status": "not_found" if exc.http_status == 404 else "failed",
            "refund_id": refund_id,
            "error": exc.message,
            "error_code": exc.error_code,
        }

    return {
        "status": str(refund.status),
        "refund_id": refund_id,
        "provider_reference": refund.provider_reference,
    }


# =============================================================================
# Payouts
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(PaymentProviderError, LockAcquisitionError),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_PROVIDER_RETRIES},
    acks_late=True,
)
def process_payout(self, payout_id: str) -> dict:
    """
    Send one payout.

    Idempotent: completed and failed payouts are returned unchanged.
    Transient provider errors and lock contention are raised for retry.

    Returns:
        Dict with the payout's status after processing
    """
    from settlement.engine import get_engine

    parsed_id = _parse_id(payout_id)
    if parsed_id is None:
        return {"status": "not_found", "payout_id": payout_id}

    try:
        payout = get_engine().payouts.process(parsed_id)
    except (PaymentProviderError, LockAcquisitionError):
        raise
    except BaseApplicationError as exc:
        logger.error(
            "Payout could not be processed",
            extra={"payout_id": payout_id, "error_code": exc.error_code},
        )
        return {
            "status": "not_found" if exc.http_status == 404 else "failed",
            "payout_id": payout_id,
            "error": exc.message,
            "error_code": exc.error_code,
        }

    return {
        "status": str(payout.status),
        "payout_id": payout_id,
        "provider_reference": payout.provider_reference,
    }


@shared_task(bind=True)
def process_scheduled_payouts(self) -> dict:
    """
    Dispatch payouts that are due.

    Runs periodically via celery-beat. Queues scheduled payouts whose
    scheduled time has passed, plus processing payouts left behind by a
    failed attempt.

    Returns:
        Dict with queued_count and requeued_count
    """
    from settlement.repositories import PayoutRepository

    payouts = PayoutRepository()
    now = timezone.now()

    due_ids = payouts.due_scheduled_ids(now)[:BATCH_SIZE]
    stuck_ids = payouts.stuck_processing_ids(
        now - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)
    )[:BATCH_SIZE]

    for payout_id in due_ids:
        process_payout.delay(str(payout_id))
    for payout_id in stuck_ids:
        process_payout.delay(str(payout_id))

    logger.info(
        f"Scheduled payout scan complete: queued {len(due_ids)} payouts",
        extra={"queued_count": len(due_ids), "requeued_count": len(stuck_ids)},
    )
    return {"queued_count": len(due_ids), "requeued_count": len(stuck_ids)}


# =============================================================================
# Notifications
# =============================================================================


@shared_task
def notify_order_status_changed(order_id: str, status: str) -> dict:
    """
    Announce an order status change.

    The delivery channel (push, email, sockets) lives outside the
    settlement engine; this hook records the event in the logs.
    """
    from settlement.models import Order

    order = (
        Order.objects.filter(pk=order_id)
        .values("buyer_id", "seller_id")
        .first()
    )
    if order is None:
        logger.warning("Order for notification not found", extra={"order_id": order_id})
        return {"status": "not_found", "order_id": order_id}

    logger.info(
        "Order status changed",
        extra={
            "order_id": order_id,
            "order_status": status,
            "buyer_id": order["buyer_id"],
            "seller_id": order["seller_id"],
        },
    )
    return {"status": "notified", "order_id": order_id, "order_status": status}
