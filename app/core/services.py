"""
Service base class.

Settlement components (commission calculator, ledger, order and shipment
machines, refund workflow, payout batcher) are services: views and Celery
tasks call them, they call repositories, and rule violations leave them as
core.exceptions errors.

    class RefundWorkflow(BaseService):
        def withdraw(self, refund_id, actor):
            with self.atomic():
                refund = self.refunds.get_for_update(refund_id)
                ...
            self.get_logger().info("Refund withdrawn", extra={...})
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Iterator


class BaseService:
    """
    Logger and transaction helpers for settlement services.

    Instances are built once by settlement.engine with their repositories
    passed in and hold no per-request state.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named ``<module>.<Class>``, under the ``settlement`` hierarchy."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Iterator[None]:
        """
        Run the block in one database transaction.

        Nested use becomes a savepoint, so a ledger write inside an order
        transition commits or rolls back with the transition.
        """
        with transaction.atomic():
            yield
