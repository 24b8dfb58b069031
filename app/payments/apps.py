"""
Payments app configuration.

This app provides payment reconciliation and refund orchestration:
- Mercado Pago and PicPay provider clients
- Checkout and subscription reconciliation
- Refund request review and execution
- Provider webhook intake
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
