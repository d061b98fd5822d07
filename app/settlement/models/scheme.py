"""
Revenue share scheme model.

A RevenueShareScheme tells the commission calculator how an order amount
is split between the platform and the seller for a product category.

Usage:
    from settlement.models import RevenueShareScheme

    RevenueShareScheme.objects.create(
        name="Electronics",
        category="electronics",
        platform_percentage=Decimal("0.1000"),
        seller_percentage=Decimal("0.9000"),
    )
"""

from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

PERCENTAGE_VALIDATORS = [
    MinValueValidator(Decimal("0")),
    MaxValueValidator(Decimal("1")),
]


class RevenueShareScheme(UUIDPrimaryKeyMixin, BaseModel):
    """
    Platform/seller split for one product category.

    Percentages are decimal fractions (0.1000 = 10%) that must sum to
    exactly 1. At most one scheme per category is active at a time; the
    scheme whose category is ``SETTLEMENT_DEFAULT_SCHEME_CATEGORY`` applies
    to categories without their own.

    Fields:
        name: Display name
        category: Product category the scheme applies to
        platform_percentage: Platform share of the order amount
        seller_percentage: Seller share of the order amount
        minimum_fee_cents: Lower bound for the platform cut
        maximum_fee_cents: Upper bound for the platform cut (optional)
        is_active: Whether the calculator may select this scheme
    """

    name = models.CharField(max_length=100)

    category = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Product category this scheme applies to",
    )

    platform_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        validators=PERCENTAGE_VALIDATORS,
        help_text="Platform share as a fraction (0.1000 = 10%)",
    )

    seller_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        validators=PERCENTAGE_VALIDATORS,
        help_text="Seller share as a fraction (0.9000 = 90%)",
    )

    minimum_fee_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Minimum platform cut in smallest currency unit",
    )

    maximum_fee_cents = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Maximum platform cut in smallest currency unit",
    )

    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["category", "-created_at"]
        verbose_name = "Revenue Share Scheme"
        verbose_name_plural = "Revenue Share Schemes"
        constraints = [
            models.UniqueConstraint(
                fields=["category"],
                condition=models.Q(is_active=True),
                name="one_active_scheme_per_category",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    platform_percentage__gte=0,
                    platform_percentage__lte=1,
                    seller_percentage__gte=0,
                    seller_percentage__lte=1,
                ),
                name="scheme_percentages_in_range",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.category}: {self.platform_percentage:.2%} platform)"

    def clean(self) -> None:
        super().clean()
        if self.platform_percentage is None or self.seller_percentage is None:
            return
        if self.platform_percentage + self.seller_percentage != Decimal("1"):
            raise DjangoValidationError(
                "Platform and seller percentages must sum to 1 "
                f"(got {self.platform_percentage + self.seller_percentage})"
            )
        if (
            self.maximum_fee_cents is not None
            and self.maximum_fee_cents < self.minimum_fee_cents
        ):
            raise DjangoValidationError(
                {"maximum_fee_cents": "Maximum fee cannot be below the minimum fee"}
            )

    @property
    def is_balanced(self) -> bool:
        """True when the two shares add up to the whole amount."""
        return self.platform_percentage + self.seller_percentage == Decimal("1")
