"""
Payments app for Mercado Pago and PicPay.

This app handles:
- Provider clients (status lookup, refunds) behind one interface
- Status normalization across providers
- Checkout reconciliation into orders (exactly once per payment)
- Subscription charge reconciliation
- Refund requests, admin review and direct refunds
- Provider webhook handling

Related apps:
    - stores: Company, PaymentSettings, Order
    - notifications: Owner notifications and refund receipts

Usage:
    from payments.services import ReconciliationService, RefundOrchestrator

    outcome = ReconciliationService().reconcile(pending_id, company_id)

    RefundOrchestrator().process_refund_request(request_id, "approve", actor=admin)
"""
