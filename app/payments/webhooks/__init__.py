"""
Webhook intake for Mercado Pago and PicPay notifications.

Notifications are stored idempotently as WebhookEvent rows and applied
through the reconciliation engine.

Usage:
    # In urls.py
    from payments.webhooks.views import picpay_webhook

    urlpatterns = [
        path("webhooks/picpay/", picpay_webhook, name="picpay_webhook"),
    ]
"""

from payments.webhooks.handlers import dispatch_webhook, register_handler
from payments.webhooks.views import mercadopago_webhook, picpay_webhook

__all__ = [
    "dispatch_webhook",
    "mercadopago_webhook",
    "picpay_webhook",
    "register_handler",
]
