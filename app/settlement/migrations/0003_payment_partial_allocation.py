"""
Let payouts claim part of a payment.

Replaces Payment.allocated_payout (one payout per payment) with
Payment.allocated_cents, the sum of the PayoutItems of live payouts, and
records the processing fee help text. Existing allocations are carried
over from the payout items before the foreign key is dropped.
"""

from django.db import migrations, models
from django.db.models import Sum

LIVE_PAYOUT_STATUSES = ("scheduled", "processing", "completed")


def backfill_allocated_cents(apps, schema_editor):
    Payment = apps.get_model("settlement", "Payment")
    PayoutItem = apps.get_model("settlement", "PayoutItem")

    totals = (
        PayoutItem.objects.filter(payout__status__in=LIVE_PAYOUT_STATUSES)
        .values("payment_id")
        .annotate(total=Sum("amount_cents"))
    )
    for row in totals:
        Payment.objects.filter(pk=row["payment_id"]).update(allocated_cents=row["total"])


def restore_allocated_payout(apps, schema_editor):
    PayoutItem = apps.get_model("settlement", "PayoutItem")
    Payment = apps.get_model("settlement", "Payment")

    items = PayoutItem.objects.filter(payout__status__in=LIVE_PAYOUT_STATUSES).order_by(
        "created_at"
    )
    for item in items:
        Payment.objects.filter(pk=item.payment_id).update(allocated_payout_id=item.payout_id)


class Migration(migrations.Migration):
    dependencies = [
        ("settlement", "0002_add_scheduled_payouts_schedule"),
    ]

    operations = [
        migrations.AddField(
            model_name="payment",
            name="allocated_cents",
            field=models.PositiveBigIntegerField(
                default=0,
                help_text="Seller net claimed by scheduled, processing or completed payouts",
            ),
        ),
        migrations.RunPython(backfill_allocated_cents, restore_allocated_payout),
        migrations.RemoveIndex(
            model_name="payment",
            name="payment_seller_alloc_idx",
        ),
        migrations.RemoveField(
            model_name="payment",
            name="allocated_payout",
        ),
        migrations.AddConstraint(
            model_name="payment",
            constraint=models.CheckConstraint(
                condition=models.Q(("allocated_cents__lte", models.F("seller_net_cents"))),
                name="payment_allocation_within_net",
            ),
        ),
        migrations.AlterField(
            model_name="payment",
            name="processing_fee_cents",
            field=models.PositiveBigIntegerField(
                default=0,
                help_text="Provider processing fee; reported to the seller, not deducted",
            ),
        ),
        migrations.AlterField(
            model_name="payoutitem",
            name="amount_cents",
            field=models.PositiveBigIntegerField(
                help_text="Part of the payment's settleable net claimed by the payout",
            ),
        ),
    ]
