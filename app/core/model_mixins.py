"""
Abstract mixins for ledger models.

List them before BaseModel:

    class Payment(UUIDPrimaryKeyMixin, VersionedMixin, ImmutableFieldsMixin, BaseModel):
        immutable_fields = ("amount_cents", "platform_cut_cents", "seller_net_cents")

UUIDPrimaryKeyMixin gives opaque ids, VersionedMixin a row version for
optimistic checks, ImmutableFieldsMixin freezes money columns after insert
and AppendOnlyMixin forbids any change at all.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import models
from django.db.models import F

from core.exceptions import ValidationError

if TYPE_CHECKING:
    from typing import Any


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Fields:
        id: UUIDField as primary key (auto-generated)

    Note:
        Because the id is generated in Python, ``self.pk`` is already set on
        unsaved instances. Use ``self._state.adding`` to tell inserts from
        updates.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class VersionedMixin(models.Model):
    """
    Optimistic locking support.

    Every update increments ``version`` in the database with an F()
    expression and reloads the new value, so concurrent writers can detect
    that the row moved under them (see settlement.locks.check_version).

    Fields:
        version: Positive integer starting at 1
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        abstract = True

    def save(self, *args: Any, **kwargs: Any) -> None:
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "version" not in update_fields:
                kwargs["update_fields"] = [*update_fields, "version"]
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])


class ImmutableFieldsMixin(models.Model):
    """
    Reject updates to fields that are fixed once the row exists.

    Subclasses list the field names in ``immutable_fields``. The values
    loaded from the database are remembered in ``from_db`` and compared on
    every subsequent save.

    Raises:
        ValidationError: error_code IMMUTABLE_FIELD when a listed field changed
    """

    immutable_fields: tuple[str, ...] = ()

    class Meta:
        abstract = True

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_values = {
            name: value
            for name, value in zip(field_names, values)
            if name in cls.immutable_fields
        }
        return instance

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            loaded = getattr(self, "_loaded_values", {})
            changed = [
                name
                for name in self.immutable_fields
                if name in loaded and getattr(self, name) != loaded[name]
            ]
            if changed:
                raise ValidationError(
                    f"{self.__class__.__name__} fields are immutable: {', '.join(changed)}",
                    error_code="IMMUTABLE_FIELD",
                    details={"fields": changed},
                )
        super().save(*args, **kwargs)


class AppendOnlyMixin(models.Model):
    """
    Rows that are written once and never changed.

    Used for audit trails and money adjustments, where history must be
    reconstructable from the stored rows alone.
    """

    class Meta:
        abstract = True

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValidationError(
                f"{self.__class__.__name__} records cannot be modified",
                error_code="APPEND_ONLY",
            )
        super().save(*args, **kwargs)

    def delete(self, *args: Any, **kwargs: Any):
        raise ValidationError(
            f"{self.__class__.__name__} records cannot be deleted",
            error_code="APPEND_ONLY",
        )
