"""
Commission calculation for the platform/seller revenue split.

CommissionCalculator resolves the revenue share scheme for a product
category and splits an amount between the platform and the seller. The
split is computed once, at order creation, and stored on the Payment; it
is never recomputed afterwards.

Rounding:
    platform_cut = floor(amount * platform_percentage), clamped to the
    scheme's minimum/maximum fee and never above the amount. The seller
    receives the remainder, so the two shares always add up exactly.

    The provider processing fee is floor(amount * processing_fee_percentage)
    clamped to the configured bounds. It is stored for seller reporting and
    does not change either share.

Usage:
    from settlement.services import CommissionCalculator

    split = calculator.calculate(10_000, category="electronics")
    split.platform_cut_cents  # 1000 with a 10% scheme
    split.seller_net_cents    # 9000
"""

from __future__ import annotations

import dataclasses
from decimal import ROUND_FLOOR, Decimal
from typing import TYPE_CHECKING

from core.exceptions import ValidationError
from core.services import BaseService
from settlement.exceptions import InvalidRevenueShareSchemeError
from settlement.types import Split

if TYPE_CHECKING:
    from settlement.models import RevenueShareScheme
    from settlement.repositories import RevenueShareSchemeRepository


class CommissionCalculator(BaseService):
    """
    Computes the platform/seller split of a payment amount.

    Scheme resolution order:
        1. Active scheme for the product category
        2. Active scheme for the default category
        3. Fallback platform percentage (no scheme)

    Args:
        schemes: Repository used to look up active schemes
        fallback_platform_percentage: Platform share when no scheme applies
        default_category: Category whose scheme applies to unknown categories
        processing_fee_percentage: Provider fee rate on the payment amount
        minimum_processing_fee_cents / maximum_processing_fee_cents: Fee bounds
    """

    def __init__(
        self,
        schemes: RevenueShareSchemeRepository,
        fallback_platform_percentage: Decimal = Decimal("0.05"),
        default_category: str = "default",
        processing_fee_percentage: Decimal = Decimal("0"),
        minimum_processing_fee_cents: int = 0,
        maximum_processing_fee_cents: int | None = None,
    ) -> None:
        self.schemes = schemes
        self.fallback_platform_percentage = Decimal(fallback_platform_percentage)
        self.default_category = default_category
        self.processing_fee_percentage = Decimal(processing_fee_percentage)
        self.minimum_processing_fee_cents = minimum_processing_fee_cents
        self.maximum_processing_fee_cents = maximum_processing_fee_cents

    def resolve_scheme(self, category: str) -> RevenueShareScheme | None:
        scheme = self.schemes.find_active(category) if category else None
        if scheme is None and category != self.default_category:
            scheme = self.schemes.find_active(self.default_category)
        return scheme

    def calculate(self, amount_cents: int, category: str) -> Split:
        """
        Split ``amount_cents`` using the scheme that applies to ``category``.

        Raises:
            ValidationError: Amount is not positive
            InvalidRevenueShareSchemeError: Resolved scheme does not sum to 1
        """
        scheme = self.resolve_scheme(category)
        if scheme is None:
            self.get_logger().info(
                "No revenue share scheme found, using fallback percentage",
                extra={
                    "category": category,
                    "platform_percentage": str(self.fallback_platform_percentage),
                },
            )
            split = self.compute_split(
                amount_cents,
                platform_percentage=self.fallback_platform_percentage,
            )
        else:
            split = self.compute_split(
                amount_cents,
                platform_percentage=scheme.platform_percentage,
                seller_percentage=scheme.seller_percentage,
                minimum_fee_cents=scheme.minimum_fee_cents,
                maximum_fee_cents=scheme.maximum_fee_cents,
                scheme_id=scheme.id,
            )
        return dataclasses.replace(
            split, processing_fee_cents=self.processing_fee(amount_cents)
        )

    def processing_fee(self, amount_cents: int) -> int:
        """Provider fee on ``amount_cents``, clamped and never above the amount."""
        fee = int(
            (Decimal(amount_cents) * self.processing_fee_percentage).to_integral_value(
                rounding=ROUND_FLOOR
            )
        )
        fee = max(fee, self.minimum_processing_fee_cents)
        if self.maximum_processing_fee_cents is not None:
            fee = min(fee, self.maximum_processing_fee_cents)
        return max(min(fee, amount_cents), 0)

    @staticmethod
    def compute_split(
        amount_cents: int,
        platform_percentage: Decimal,
        seller_percentage: Decimal | None = None,
        minimum_fee_cents: int = 0,
        maximum_fee_cents: int | None = None,
        scheme_id=None,
    ) -> Split:
        """
        Deterministic split of one amount.

        ``seller_percentage`` defaults to ``1 - platform_percentage``; when
        given, the two must sum to exactly 1.

        Example:
            CommissionCalculator.compute_split(10_000, Decimal("0.10"))
            # Split(amount_cents=10000, platform_cut_cents=1000, seller_net_cents=9000, ...)
        """
        if amount_cents <= 0:
            raise ValidationError(
                "Amount must be positive",
                details={"amount_cents": amount_cents},
            )

        platform_percentage = Decimal(platform_percentage)
        if seller_percentage is None:
            seller_percentage = Decimal(1) - platform_percentage
        seller_percentage = Decimal(seller_percentage)

        if (
            platform_percentage < 0
            or seller_percentage < 0
            or platform_percentage + seller_percentage != Decimal(1)
        ):
            raise InvalidRevenueShareSchemeError(
                "Platform and seller percentages must sum to 1",
                details={
                    "scheme_id": str(scheme_id) if scheme_id else None,
                    "platform_percentage": str(platform_percentage),
                    "seller_percentage": str(seller_percentage),
                },
            )

        cut = int(
            (Decimal(amount_cents) * platform_percentage).to_integral_value(
                rounding=ROUND_FLOOR
            )
        )
        cut = max(cut, minimum_fee_cents or 0)
        if maximum_fee_cents is not None:
            cut = min(cut, maximum_fee_cents)
        cut = min(cut, amount_cents)

        return Split(
            amount_cents=amount_cents,
            platform_cut_cents=cut,
            seller_net_cents=amount_cents - cut,
            platform_percentage=platform_percentage,
            scheme_id=scheme_id,
        )
