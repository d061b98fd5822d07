"""
Settlement admin configuration.

Money fields, statuses and audit rows are read-only here: state changes
and amounts go through the engine so the ledger stays consistent. Only
reference data (products, revenue schemes, delivery agents) is editable.
"""

from django.contrib import admin

from settlement.models import (
    DeliveryAgent,
    Order,
    Payment,
    PaymentAdjustment,
    PaymentAuditEntry,
    Payout,
    PayoutItem,
    Product,
    Refund,
    RevenueShareScheme,
    Shipment,
)


def _money(cents: int, currency: str) -> str:
    return f"{cents / 100:.2f} {currency.upper()}"


class ReadOnlyAdminMixin:
    """No add, change or delete through the admin."""

    def has_add_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


# =============================================================================
# Reference Data
# =============================================================================


@admin.register(RevenueShareScheme)
class RevenueShareSchemeAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "category",
        "platform_percentage",
        "seller_percentage",
        "minimum_fee_cents",
        "maximum_fee_cents",
        "is_active",
    ]
    list_filter = ["is_active", "category"]
    search_fields = ["name", "category"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["title", "seller", "category", "price_cents", "currency", "is_active"]
    list_filter = ["is_active", "category", "currency"]
    search_fields = ["id", "title", "seller__username"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(DeliveryAgent)
class DeliveryAgentAdmin(admin.ModelAdmin):
    """
    Delivery agents. Earnings are credited on delivery and never edited.
    """

    list_display = ["id", "user", "earnings_display", "is_active", "created_at"]
    list_filter = ["is_active"]
    search_fields = ["id", "user__username", "user__email"]
    readonly_fields = ["id", "earnings_cents", "current_location", "created_at", "updated_at"]

    def earnings_display(self, obj: DeliveryAgent) -> str:
        return f"{obj.earnings_cents / 100:.2f}"

    earnings_display.short_description = "Earnings"


# =============================================================================
# Orders & Payments
# =============================================================================


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    can_delete = False
    fields = ["reference", "amount_cents", "platform_cut_cents", "seller_net_cents", "status"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for Order.

    Status changes must go through OrderStateMachine so shipments and
    payments follow; the admin only shows them.
    """

    list_display = [
        "id",
        "buyer",
        "seller",
        "amount_display",
        "status",
        "payment_status",
        "created_at",
    ]
    list_filter = ["status", "payment_status", "currency", "created_at"]
    search_fields = ["id", "buyer__username", "seller__username"]
    readonly_fields = [
        "id",
        "buyer",
        "seller",
        "product",
        "quantity",
        "total_amount_cents",
        "currency",
        "status",
        "payment_status",
        "delivery_date",
        "cancelled_at",
        "version",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    inlines = [PaymentInline]

    def amount_display(self, obj: Order) -> str:
        return _money(obj.total_amount_cents, obj.currency)

    amount_display.short_description = "Total"

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


class PaymentAdjustmentInline(admin.TabularInline):
    model = PaymentAdjustment
    extra = 0
    can_delete = False
    fields = ["amount_cents", "refund", "created_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


class PaymentAuditEntryInline(admin.TabularInline):
    model = PaymentAuditEntry
    extra = 0
    can_delete = False
    fields = ["action", "from_status", "to_status", "amount_cents", "actor_label", "created_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payment)
class PaymentAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Payments are written only by the ledger; the split is immutable.
    """

    list_display = [
        "reference",
        "order",
        "seller",
        "amount_display",
        "platform_cut_cents",
        "seller_net_cents",
        "processing_fee_cents",
        "status",
        "allocated_cents",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["id", "reference", "order__id", "seller__username"]
    date_hierarchy = "created_at"
    inlines = [PaymentAdjustmentInline, PaymentAuditEntryInline]

    def amount_display(self, obj: Payment) -> str:
        return _money(obj.amount_cents, obj.currency)

    amount_display.short_description = "Amount"


@admin.register(PaymentAuditEntry)
class PaymentAuditEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ["payment", "action", "from_status", "to_status", "amount_cents", "actor_label", "created_at"]
    list_filter = ["action", "created_at"]
    search_fields = ["payment__id", "payment__reference", "actor_label"]


# =============================================================================
# Shipments
# =============================================================================


@admin.register(Shipment)
class ShipmentAdmin(admin.ModelAdmin):
    list_display = ["tracking_number", "order", "agent", "status", "delivery_fee_cents", "created_at"]
    list_filter = ["status", "created_at"]
    search_fields = ["id", "tracking_number", "order__id"]
    readonly_fields = [
        "id",
        "order",
        "agent",
        "status",
        "tracking_number",
        "delivery_fee_cents",
        "agent_earnings_cents",
        "picked_up_at",
        "delivered_at",
        "actual_delivery",
        "cancelled_at",
        "version",
        "created_at",
        "updated_at",
    ]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


# =============================================================================
# Refunds & Payouts
# =============================================================================


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    """
    Admin configuration for Refund.

    Decisions are made through the refund decision endpoint so the ledger
    adjustment is written with them.
    """

    list_display = ["id", "order", "amount_cents", "status", "requested_by", "processed_by", "created_at"]
    list_filter = ["status", "created_at"]
    search_fields = ["id", "order__id", "provider_reference"]
    readonly_fields = [
        "id",
        "order",
        "payment",
        "requested_by",
        "processed_by",
        "amount_cents",
        "status",
        "approved_at",
        "rejected_at",
        "completed_at",
        "provider_reference",
        "provider_attempts",
        "last_provider_error",
        "version",
        "created_at",
        "updated_at",
    ]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


class PayoutItemInline(admin.TabularInline):
    model = PayoutItem
    extra = 0
    can_delete = False
    fields = ["payment", "amount_cents", "created_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payout)
class PayoutAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "id",
        "seller",
        "amount_display",
        "status",
        "scheduled_at",
        "retry_count",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["id", "seller__username", "provider_reference"]
    date_hierarchy = "created_at"
    inlines = [PayoutItemInline]

    def amount_display(self, obj: Payout) -> str:
        return _money(obj.total_amount_cents, obj.currency)

    amount_display.short_description = "Amount"
