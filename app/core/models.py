"""
Abstract base model for settlement records.

Every ledger row (orders, payments, refunds, payouts and their audit
trail) carries creation and modification timestamps. ``created_at`` is
also the tie-breaker for oldest-first payout allocation, so it is indexed.

Mixins adding identity, versioning and write protection live in
core.model_mixins and are listed before BaseModel:

    class Payment(UUIDPrimaryKeyMixin, VersionedMixin, ImmutableFieldsMixin, BaseModel):
        ...
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Timestamps shared by all settlement models.

    Fields:
        created_at: Set once on insert
        updated_at: Refreshed on every save
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When the record was inserted",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the record was last saved",
    )

    class Meta:
        abstract = True
