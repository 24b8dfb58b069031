"""
Payment admin configuration.

Registers the payment domain models with the Django admin. Status
columns are read-only here: approvals, rejections and reconciliation go
through the service layer so the compare-and-swap guards apply.
"""

from django.contrib import admin

from core.helpers import format_brl

from payments.models import PendingPayment, RefundRequest, SubscriptionPayment, WebhookEvent
from payments.state_machines import RefundKind

__all__ = [
    "PendingPaymentAdmin",
    "RefundRequestAdmin",
    "SubscriptionPaymentAdmin",
    "WebhookEventAdmin",
]


@admin.register(PendingPayment)
class PendingPaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for PendingPayment.

    Rows stuck in PROCESSING show up here for manual reconciliation.
    """

    list_display = [
        "id",
        "company",
        "provider",
        "provider_reference",
        "status",
        "check_count",
        "last_checked_at",
        "created_at",
    ]
    list_filter = ["status", "provider", "created_at"]
    search_fields = ["id", "provider_reference", "company__name"]
    readonly_fields = [
        "id",
        "status",
        "order",
        "version",
        "completed_at",
        "cancelled_at",
        "last_checked_at",
        "last_provider_status",
        "check_count",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "company", "provider", "provider_reference", "status", "order"),
            },
        ),
        (
            "Checkout Payload",
            {
                "fields": ("order_payload",),
                "classes": ("collapse",),
            },
        ),
        (
            "Polling",
            {
                "fields": ("check_count", "last_checked_at", "last_provider_status"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("completed_at", "cancelled_at", "created_at", "updated_at", "version"),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Pending payments are never deleted (audit trail)."""
        return False


@admin.register(RefundRequest)
class RefundRequestAdmin(admin.ModelAdmin):
    """
    Admin configuration for RefundRequest.

    Rows imported by hand without a kind are classified from the legacy
    "Subscription - <plan>" customer-name convention on save.
    """

    list_display = [
        "id",
        "company",
        "refund_kind",
        "payment_provider",
        "amount_display",
        "status",
        "reviewed_by",
        "created_at",
    ]
    list_filter = ["status", "refund_kind", "payment_provider", "created_at"]
    search_fields = ["id", "payment_id", "refund_id", "customer_name", "company__name"]
    readonly_fields = [
        "id",
        "status",
        "version",
        "reviewed_by",
        "reviewed_at",
        "refund_id",
        "error_message",
        "processed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "company", "order", "subscription_payment", "status"),
            },
        ),
        (
            "Payment",
            {
                "fields": (
                    "refund_kind",
                    "payment_provider",
                    "payment_id",
                    "requested_amount",
                    "original_amount",
                    "customer_name",
                    "reason",
                    "requested_by",
                ),
            },
        ),
        (
            "Review",
            {
                "fields": ("reviewed_by", "reviewed_at", "rejection_reason"),
            },
        ),
        (
            "Result",
            {
                "fields": ("refund_id", "error_message", "processed_at"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at", "version"),
            },
        ),
    )

    def amount_display(self, obj: RefundRequest) -> str:
        return format_brl(obj.requested_amount)

    amount_display.short_description = "Amount"

    def save_model(self, request, obj, form, change):
        if not change and obj.refund_kind == RefundKind.ORDER and obj.order_id is None:
            obj.refund_kind = RefundRequest.infer_kind(obj.customer_name)
        super().save_model(request, obj, form, change)

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for refund requests (audit trail)."""
        return False


@admin.register(SubscriptionPayment)
class SubscriptionPaymentAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "company",
        "plan_key",
        "amount_display",
        "payment_status",
        "paid_at",
        "period_end",
        "created_at",
    ]
    list_filter = ["payment_status", "plan_key", "payment_method"]
    search_fields = ["id", "payment_reference", "company__name"]
    readonly_fields = ["id", "payment_status", "paid_at", "period_start", "period_end", "created_at", "updated_at"]
    ordering = ["-created_at"]

    def amount_display(self, obj: SubscriptionPayment) -> str:
        return format_brl(obj.amount)

    amount_display.short_description = "Amount"


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "provider",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "provider", "created_at"]
    search_fields = ["id", "event_key", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "provider",
        "event_key",
        "event_type",
        "payload",
        "processed_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False
