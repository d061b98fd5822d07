"""
Product reference record.

Listings are managed elsewhere; this table holds just enough for order
intake: who sells it, what it costs and which revenue scheme category it
falls under.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Product(UUIDPrimaryKeyMixin, BaseModel):
    """A sellable item as seen by the settlement engine."""

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="products",
    )

    title = models.CharField(max_length=255)

    category = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Category used to select the revenue share scheme",
    )

    price_cents = models.PositiveBigIntegerField(
        help_text="Unit price in smallest currency unit",
    )

    currency = models.CharField(max_length=3, default="ngn")

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price_cents__gt=0),
                name="product_price_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.price_cents / 100:.2f} {self.currency.upper()})"
