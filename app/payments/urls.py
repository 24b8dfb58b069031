"""
URL configuration for the payments app.

Routes:
    - POST /checkout/picpay/ - Start a PicPay checkout
    - POST /reconcile/ - Checkout reconciliation (browser poller)
    - POST /subscriptions/reconcile/ - Subscription reconciliation
    - GET/POST /refunds/ - Refund request history and intake
    - POST /refunds/process/ - Admin approve/reject
    - POST /refunds/direct/ - Direct refund by store staff
    - POST /webhooks/picpay/ - PicPay notifications
    - POST /webhooks/mercadopago/ - Mercado Pago notifications

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments.views import (
    CheckoutView,
    DirectRefundView,
    ProcessRefundRequestView,
    ReconcileView,
    RefundRequestListCreateView,
    SubscriptionReconcileView,
)
from payments.webhooks.views import mercadopago_webhook, picpay_webhook

app_name = "payments"

urlpatterns = [
    # Checkout
    path("checkout/picpay/", CheckoutView.as_view(), name="picpay_checkout"),
    # Reconciliation
    path("reconcile/", ReconcileView.as_view(), name="reconcile"),
    path(
        "subscriptions/reconcile/",
        SubscriptionReconcileView.as_view(),
        name="subscription_reconcile",
    ),
    # Refunds
    path("refunds/", RefundRequestListCreateView.as_view(), name="refund_requests"),
    path("refunds/process/", ProcessRefundRequestView.as_view(), name="process_refund"),
    path("refunds/direct/", DirectRefundView.as_view(), name="direct_refund"),
    # Webhook endpoints
    path("webhooks/picpay/", picpay_webhook, name="picpay_webhook"),
    path("webhooks/mercadopago/", mercadopago_webhook, name="mercadopago_webhook"),
]
