"""
Tests for payments app.

This package contains test modules for:
- test_models.py: PendingPayment, RefundRequest, SubscriptionPayment, WebhookEvent
- test_normalizer.py: Provider status normalization
- test_providers.py: Mercado Pago and PicPay clients
- test_idempotency.py: Compare-and-swap claims
- test_credentials.py: Tenant and platform credentials
- test_reconciliation_service.py / test_subscription_service.py: Reconciliation
- test_refund_service.py: Refund intake, review and execution
- test_views.py: API endpoint tests
- test_tasks.py: Stuck pending payment sweep
- test_admin.py: Admin save hooks

Usage:
    pytest app/payments/tests/
    pytest app/payments/tests/test_refund_service.py
"""
