"""
Payment domain models.

This module contains all payment-related models:
- PendingPayment: Checkout awaiting provider confirmation, materialized
  into an Order exactly once
- RefundRequest: Supervised refund workflow (owner asks, admin decides)
- SubscriptionPayment: Platform plan charge collected on the platform account
- WebhookEvent: Provider notification tracking for idempotent processing
"""

from payments.models.pending_payment import PendingPayment
from payments.models.refund_request import RefundRequest
from payments.models.subscription_payment import (
    SubscriptionPayment,
    SubscriptionPaymentMethod,
)
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "PendingPayment",
    "RefundRequest",
    "SubscriptionPayment",
    "SubscriptionPaymentMethod",
    "WebhookEvent",
]
