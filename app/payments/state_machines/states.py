"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

PendingPayment States:
    pending → processing → completed (order materialized)
    pending → cancelled (provider confirmed cancellation via webhook)

RefundRequest States:
    pending → rejected
    pending → processing → completed
    pending → processing → failed

SubscriptionPayment States:
    pending → paid → refunded
    pending → failed
"""

from django.db import models


class PendingPaymentStatus(models.TextChoices):
    """
    States for a checkout awaiting provider confirmation.

    Terminal states: COMPLETED, CANCELLED

    PROCESSING is held only by the writer that won the idempotency claim
    while it materializes the order. A row left in PROCESSING means the
    materialization failed and needs manual reconciliation.
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class RefundRequestStatus(models.TextChoices):
    """
    States for a supervised refund request.

    Terminal states: COMPLETED, FAILED, REJECTED

    State Flow:
        PENDING → REJECTED
        PENDING → PROCESSING → COMPLETED
        PENDING → PROCESSING → FAILED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    REJECTED = "rejected", "Rejected"


class RefundKind(models.TextChoices):
    """
    What a refund request refunds.

    ORDER refunds use the tenant's own provider credential.
    SUBSCRIPTION refunds use the platform credential.
    """

    ORDER = "order", "Order"
    SUBSCRIPTION = "subscription", "Subscription"


class RefundAction(models.TextChoices):
    """Admin decision on a refund request."""

    APPROVE = "approve", "Approve"
    REJECT = "reject", "Reject"


class PaymentProvider(models.TextChoices):
    """
    External payment processors.

    MERCADOPAGO: static bearer token, payments + refunds API
    PICPAY: OAuth2 client credentials, payment-link API
    """

    MERCADOPAGO = "mercadopago", "Mercado Pago"
    PICPAY = "picpay", "PicPay"


class NormalizedStatus(models.TextChoices):
    """Provider status reduced to the internal tristate."""

    APPROVED = "approved", "Approved"
    CANCELLED = "cancelled", "Cancelled"
    PENDING = "pending", "Pending"


class SubscriptionPaymentStatus(models.TextChoices):
    """
    States for a platform subscription charge.

    State Flow:
        PENDING → PAID → REFUNDED
        PENDING → FAILED
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


__all__ = [
    "NormalizedStatus",
    "PaymentProvider",
    "PendingPaymentStatus",
    "RefundAction",
    "RefundKind",
    "RefundRequestStatus",
    "SubscriptionPaymentStatus",
    "WebhookEventStatus",
]
