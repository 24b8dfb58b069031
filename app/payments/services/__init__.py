"""
Payment services for reconciliation and refunds.

This module provides:
- CheckoutService: Starts PicPay checkouts (pending payment + payment link)
- ReconciliationService: Settles tenant checkout payments into orders
- SubscriptionReconciliationService: Settles platform plan charges
- RefundOrchestrator: Refund request review and execution

Usage:
    from payments.services import ReconciliationService

    outcome = ReconciliationService().reconcile(pending_id, company_id)
    if outcome.approved:
        ...  # outcome.order_id is the materialized order

    from payments.services import RefundOrchestrator

    outcome = RefundOrchestrator().process_refund_request(
        request_id,
        action="reject",
        rejection_reason="Order was delivered",
        actor=admin,
    )
"""

from payments.services.checkout_service import CheckoutLink, CheckoutService
from payments.services.reconciliation_service import (
    ReconciliationOutcome,
    ReconciliationService,
    build_order_from_payload,
)
from payments.services.refund_service import RefundOrchestrator, RefundOutcome
from payments.services.subscription_service import (
    SubscriptionOutcome,
    SubscriptionReconciliationService,
)

__all__ = [
    "CheckoutLink",
    "CheckoutService",
    "ReconciliationOutcome",
    "ReconciliationService",
    "RefundOrchestrator",
    "RefundOutcome",
    "SubscriptionOutcome",
    "SubscriptionReconciliationService",
    "build_order_from_payload",
]
