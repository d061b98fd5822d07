import uuid

import django.core.validators
import django.db.models.deletion
import django_fsm
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="RevenueShareScheme",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the record was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When the record was last saved")),
                ("name", models.CharField(max_length=100)),
                ("category", models.CharField(db_index=True, help_text="Product category this scheme applies to", max_length=100)),
                ("platform_percentage", models.DecimalField(decimal_places=4, help_text="Platform share as a fraction (0.1000 = 10%)", max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal("0")), django.core.validators.MaxValueValidator(Decimal("1"))])),
                ("seller_percentage", models.DecimalField(decimal_places=4, help_text="Seller share as a fraction (0.9000 = 90%)", max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal("0")), django.core.validators.MaxValueValidator(Decimal("1"))])),
                ("minimum_fee_cents", models.PositiveBigIntegerField(default=0, help_text="Minimum platform cut in smallest currency unit")),
                ("maximum_fee_cents", models.PositiveBigIntegerField(blank=True, help_text="Maximum platform cut in smallest currency unit", null=True)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
            ],
            options={
                "verbose_name": "Revenue Share Scheme",
                "verbose_name_plural": "Revenue Share Schemes",
                "ordering": ["category", "-created_at"],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("is_active", True)), fields=("category",), name="one_active_scheme_per_category"),
                    models.CheckConstraint(condition=models.Q(("platform_percentage__gte", 0), ("platform_percentage__lte", 1), ("seller_percentage__gte", 0), ("seller_percentage__lte", 1)), name="scheme_percentages_in_range"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the record was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When the record was last saved")),
                ("title", models.CharField(max_length=255)),
                ("category", models.CharField(db_index=True, help_text="Category used to select the revenue share scheme", max_length=100)),
                ("price_cents", models.PositiveBigIntegerField(help_text="Unit price in smallest currency unit")),
                ("currency", models.CharField(default="ngn", max_length=3)),
                ("is_active", models.BooleanField(default=True)),
                ("seller", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="products", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("price_cents__gt", 0)), name="product_price_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DeliveryAgent",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the record was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When the record was last saved")),
                ("earnings_cents", models.PositiveBigIntegerField(default=0, help_text="Total credited delivery commission in smallest currency unit")),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("current_location", models.JSONField(blank=True, null=True)),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="delivery_agent", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the record was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When the record was last saved")),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("total_amount_cents", models.PositiveBigIntegerField(help_text="Order total in smallest currency unit (immutable)")),
                ("currency", models.CharField(default="ngn", max_length=3)),
                ("status", django_fsm.FSMField(choices=[("pending", "Pending"), ("confirmed", "Confirmed"), ("shipped", "Shipped"), ("delivered", "Delivered"), ("cancelled", "Cancelled")], db_index=True, default="pending", help_text="Current state of the order (managed by FSM)", max_length=50, protected=True)),
                ("payment_status", models.CharField(choices=[("pending", "Pending"), ("completed", "Completed"), ("cancelled", "Cancelled"), ("refunded", "Refunded")], default="pending", help_text="Mirror of the live payment status, maintained by the ledger", max_length=20)),
                ("payment_method", models.CharField(blank=True, default="", max_length=50)),
                ("shipping_address", models.TextField()),
                ("expected_delivery_date", models.DateTimeField(blank=True, null=True)),
                ("delivery_date", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                ("buyer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="orders_placed", to=settings.AUTH_USER_MODEL)),
                ("seller", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="orders_received", to=settings.AUTH_USER_MODEL)),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="orders", to="settlement.product")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["buyer", "status"], name="order_buyer_status_idx"),
                    models.Index(fields=["seller", "status"], name="order_seller_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("total_amount_cents__gt", 0)), name="order_total_positive"),
                    models.CheckConstraint(condition=models.Q(("quantity__gt", 0)), name="order_quantity_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payout",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the record was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When the record was last saved")),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("total_amount_cents", models.PositiveBigIntegerField(help_text="Payout amount in smallest currency unit")),
                ("currency", models.CharField(default="ngn", max_length=3)),
                ("status", django_fsm.FSMField(choices=[("scheduled", "Scheduled"), ("processing", "Processing"), ("completed", "Completed"), ("failed", "Failed")], db_index=True, default="scheduled", help_text="Current state of the payout (managed by FSM)", max_length=50, protected=True)),
                ("provider", models.CharField(blank=True, default="", max_length=50)),
                ("provider_reference", models.CharField(blank=True, default="", max_length=255)),
                ("scheduled_at", models.DateTimeField(db_index=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, default="")),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("max_retries", models.PositiveIntegerField(default=3)),
                ("seller", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payouts", to=settings.AUTH_USER_MODEL)),
                ("processed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="payouts_processed", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["seller", "status"], name="payout_seller_status_idx"),
                    models.Index(fields=["status", "scheduled_at"], name="payout_status_sched_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("total_amount_cents__gt", 0)), name="payout_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the record was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When the record was last saved")),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("reference", models.CharField(max_length=100, unique=True)),
                ("amount_cents", models.PositiveBigIntegerField(help_text="Amount charged in smallest currency unit")),
                ("platform_cut_cents", models.PositiveBigIntegerField(help_text="Platform share in smallest currency unit")),
                ("seller_net_cents", models.PositiveBigIntegerField(help_text="Seller share in smallest currency unit")),
                ("processing_fee_cents", models.PositiveBigIntegerField(default=0)),
                ("platform_percentage", models.DecimalField(decimal_places=4, help_text="Platform share applied when the split was computed", max_digits=5)),
                ("currency", models.CharField(default="ngn", max_length=3)),
                ("status", django_fsm.FSMField(choices=[("pending", "Pending"), ("completed", "Completed"), ("cancelled", "Cancelled"), ("refunded", "Refunded")], db_index=True, default="pending", help_text="Current state of the payment (managed by FSM)", max_length=50, protected=True)),
                ("provider", models.CharField(default="pending", max_length=50)),
                ("method", models.CharField(blank=True, default="", max_length=50)),
                ("description", models.TextField(blank=True, default="")),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="settlement.order")),
                ("buyer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payments_made", to=settings.AUTH_USER_MODEL)),
                ("seller", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payments_received", to=settings.AUTH_USER_MODEL)),
                ("scheme", models.ForeignKey(blank=True, help_text="Scheme used for the split; empty when the fallback share applied", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="payments", to="settlement.revenuesharescheme")),
                ("allocated_payout", models.ForeignKey(blank=True, help_text="Scheduled, processing or completed payout settling this payment", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="allocated_payments", to="settlement.payout")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["seller", "status"], name="payment_seller_status_idx"),
                    models.Index(fields=["seller", "status", "allocated_payout"], name="payment_seller_alloc_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount_cents__gt", 0)), name="payment_amount_positive"),
                    models.CheckConstraint(condition=models.Q(("platform_cut_cents__lte", models.F("amount_cents")), ("seller_net_cents", models.F("amount_cents") - models.F("platform_cut_cents"))), name="payment_split_balanced"),
                    models.UniqueConstraint(condition=models.Q(("status", "cancelled"), _negated=True), fields=("order",), name="one_live_payment_per_order"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Refund",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the record was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When the record was last saved")),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("amount_cents", models.PositiveBigIntegerField(help_text="Refund amount in smallest currency unit")),
                ("reason", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("status", django_fsm.FSMField(choices=[("pending", "Pending"), ("approved", "Approved"), ("rejected", "Rejected"), ("completed", "Completed")], db_index=True, default="pending", help_text="Current state of the refund (managed by FSM)", max_length=50, protected=True)),
                ("admin_notes", models.TextField(blank=True, default="")),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("provider_reference", models.CharField(blank=True, default="", max_length=255)),
                ("provider_attempts", models.PositiveIntegerField(default=0)),
                ("last_provider_error", models.TextField(blank=True, default="")),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="refunds", to="settlement.order")),
                ("payment", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="refunds", to="settlement.payment")),
                ("requested_by", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="refunds_requested", to=settings.AUTH_USER_MODEL)),
                ("processed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="refunds_processed", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount_cents__gt", 0)), name="refund_amount_positive"),
                    models.UniqueConstraint(condition=models.Q(("status", "rejected"), _negated=True), fields=("order",), name="one_active_refund_per_order"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentAdjustment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the record was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When the record was last saved")),
                ("amount_cents", models.PositiveBigIntegerField()),
                ("payment", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="adjustments", to="settlement.payment")),
                ("refund", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="adjustments", to="settlement.refund")),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount_cents__gt", 0)), name="adjustment_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentAuditEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the record was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When the record was last saved")),
                ("action", models.CharField(choices=[("created", "Created"), ("completed", "Completed"), ("cancelled", "Cancelled"), ("refund_applied", "Refund Applied"), ("refunded", "Refunded"), ("allocated", "Allocated to Payout"), ("released", "Released from Payout")], max_length=20)),
                ("from_status", models.CharField(blank=True, default="", max_length=20)),
                ("to_status", models.CharField(blank=True, default="", max_length=20)),
                ("amount_cents", models.BigIntegerField(blank=True, null=True)),
                ("actor_label", models.CharField(help_text="Role and identifier of whoever caused the change", max_length=100)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("payment", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="audit_entries", to="settlement.payment")),
                ("actor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name_plural": "Payment audit entries",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["payment", "created_at"], name="payment_audit_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PayoutItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the record was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When the record was last saved")),
                ("amount_cents", models.PositiveBigIntegerField(help_text="Settleable seller net of the payment at allocation time")),
                ("payout", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="settlement.payout")),
                ("payment", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payout_items", to="settlement.payment")),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("payout", "payment"), name="payout_item_unique_payment"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Shipment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the record was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When the record was last saved")),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("status", django_fsm.FSMField(choices=[("assigned", "Assigned"), ("picked_up", "Picked Up"), ("in_transit", "In Transit"), ("delivered", "Delivered"), ("cancelled", "Cancelled")], db_index=True, default="assigned", help_text="Current state of the shipment (managed by FSM)", max_length=50, protected=True)),
                ("tracking_number", models.CharField(max_length=40, unique=True)),
                ("delivery_fee_cents", models.PositiveBigIntegerField()),
                ("agent_earnings_cents", models.PositiveBigIntegerField(default=0, help_text="Commission credited to the agent on delivery")),
                ("estimated_delivery", models.DateTimeField(blank=True, null=True)),
                ("picked_up_at", models.DateTimeField(blank=True, null=True)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                ("actual_delivery", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("current_location", models.JSONField(blank=True, null=True)),
                ("delivery_proof", models.JSONField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("order", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="shipment", to="settlement.order")),
                ("agent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="shipments", to="settlement.deliveryagent")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["agent", "status"], name="shipment_agent_status_idx"),
                ],
            },
        ),
    ]
