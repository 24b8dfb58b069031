"""
DRF serializers for payments app.

This module provides serializers for:
- PicPay checkout creation
- Checkout reconciliation requests (browser poller)
- Subscription reconciliation requests
- Refund request intake, review and direct refunds
- Refund request display

Related files:
    - views.py: Payment API views
    - services/: ReconciliationService, RefundOrchestrator

Usage:
    serializer = ReconcileRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    serializer.validated_data["pendingId"]
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from payments.models import RefundRequest
from payments.state_machines import RefundAction
from stores.models import OrderSource


class ReconcileRequestSerializer(serializers.Serializer):
    """
    Body of POST /reconcile/.

    Field names follow the checkout page's camelCase payload.
    """

    pendingId = serializers.UUIDField()
    companyId = serializers.UUIDField()
    providerReference = serializers.CharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        max_length=255,
    )


class ReconcileResponseSerializer(serializers.Serializer):
    approved = serializers.BooleanField()
    status = serializers.CharField()
    orderId = serializers.CharField(required=False)


class CheckoutItemSerializer(serializers.Serializer):
    product_id = serializers.CharField(max_length=64)
    product_name = serializers.CharField(required=False, allow_blank=True, default="")
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.00"))
    total_price = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        required=False,
        allow_null=True,
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    options = serializers.ListField(child=serializers.JSONField(), required=False, default=list)


class CreateCheckoutSerializer(serializers.Serializer):
    """
    Body of POST /checkout/picpay/.

    Field names follow the checkout page's camelCase payload;
    ``to_order_payload`` converts it to what reconciliation stores.
    """

    companyId = serializers.UUIDField()
    items = CheckoutItemSerializer(many=True, allow_empty=False)
    customerName = serializers.CharField(max_length=200)
    customerPhone = serializers.CharField(max_length=30, required=False, allow_blank=True, default="")
    customerEmail = serializers.EmailField(required=False, allow_blank=True, allow_null=True)
    deliveryAddressId = serializers.CharField(max_length=64, required=False, allow_null=True, allow_blank=True)
    deliveryFee = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, default=Decimal("0.00"))
    subtotal = serializers.DecimalField(max_digits=10, decimal_places=2)
    total = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))
    couponId = serializers.UUIDField(required=False, allow_null=True)
    discountAmount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    tableSessionId = serializers.CharField(max_length=64, required=False, allow_null=True, allow_blank=True)
    tableNumber = serializers.IntegerField(required=False, allow_null=True)
    source = serializers.ChoiceField(choices=OrderSource.choices, required=False, default=OrderSource.ONLINE)

    def to_order_payload(self) -> dict:
        data = self.validated_data

        def text(value):
            return str(value) if value is not None else None

        return {
            "customer_name": data["customerName"],
            "customer_phone": data.get("customerPhone", ""),
            "customer_email": data.get("customerEmail") or "",
            "delivery_address_id": data.get("deliveryAddressId") or None,
            "items": [
                {
                    "product_id": item["product_id"],
                    "product_name": item.get("product_name", ""),
                    "quantity": item["quantity"],
                    "unit_price": str(item["unit_price"]),
                    "total_price": text(item.get("total_price")),
                    "notes": item.get("notes", ""),
                    "options": item.get("options", []),
                }
                for item in data["items"]
            ],
            "subtotal": str(data["subtotal"]),
            "delivery_fee": str(data.get("deliveryFee", Decimal("0.00"))),
            "discount_amount": text(data.get("discountAmount")),
            "total": str(data["total"]),
            "coupon_id": text(data.get("couponId")),
            "notes": data.get("notes", ""),
            "table_session_id": data.get("tableSessionId") or None,
            "table_number": data.get("tableNumber"),
            "source": data.get("source") or OrderSource.ONLINE,
        }


class CheckoutResponseSerializer(serializers.Serializer):
    pendingId = serializers.CharField()
    paymentUrl = serializers.CharField()
    paymentLinkId = serializers.CharField()
    txid = serializers.CharField(allow_null=True)
    qrCode = serializers.CharField(allow_null=True)
    pixKey = serializers.CharField(allow_null=True)
    expiresAt = serializers.DateTimeField()
    total = serializers.DecimalField(max_digits=10, decimal_places=2)
    companyName = serializers.CharField()
    gateway = serializers.CharField()
    mode = serializers.CharField()
    availableMethods = serializers.ListField(child=serializers.CharField())


class SubscriptionReconcileRequestSerializer(serializers.Serializer):
    subscriptionPaymentId = serializers.UUIDField()


class SubscriptionReconcileResponseSerializer(serializers.Serializer):
    paid = serializers.BooleanField()
    status = serializers.CharField()
    plan = serializers.CharField()
    message = serializers.CharField()
    clear_reference = serializers.BooleanField()


class ProcessRefundRequestSerializer(serializers.Serializer):
    """
    Admin review of a refund request.

    ``rejection_reason`` is checked by the orchestrator so a blank reason
    never touches the row.
    """

    request_id = serializers.UUIDField()
    action = serializers.ChoiceField(choices=RefundAction.choices)
    rejection_reason = serializers.CharField(
        required=False,
        allow_blank=True,
        allow_null=True,
    )


class CreateRefundRequestSerializer(serializers.Serializer):
    """
    Store owner asks for a refund.

    Exactly one of ``order_id`` / ``subscription_payment_id``.
    ``amount`` defaults to the full amount paid.
    """

    order_id = serializers.UUIDField(required=False, allow_null=True)
    subscription_payment_id = serializers.UUIDField(required=False, allow_null=True)
    amount = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal("0.01"),
        required=False,
        allow_null=True,
    )
    reason = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if bool(attrs.get("order_id")) == bool(attrs.get("subscription_payment_id")):
            raise serializers.ValidationError(
                "Provide either order_id or subscription_payment_id"
            )
        return attrs


class DirectRefundSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class RefundOutcomeSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    refund_id = serializers.CharField(required=False)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    provider = serializers.CharField(required=False)
    message = serializers.CharField()


class RefundRequestSerializer(serializers.ModelSerializer):
    """Read-only representation of a refund request."""

    class Meta:
        model = RefundRequest
        fields = [
            "id",
            "company",
            "order",
            "subscription_payment",
            "refund_kind",
            "payment_provider",
            "payment_id",
            "requested_amount",
            "original_amount",
            "reason",
            "customer_name",
            "status",
            "reviewed_at",
            "rejection_reason",
            "refund_id",
            "error_message",
            "processed_at",
            "created_at",
        ]
        read_only_fields = fields


class ErrorResponseSerializer(serializers.Serializer):
    error = serializers.CharField()
    error_code = serializers.CharField(required=False)
