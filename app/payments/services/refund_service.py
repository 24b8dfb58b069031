"""
Refund orchestration for supervised and direct refunds.

This module provides the RefundOrchestrator which drives a refund from a
store owner's request, through platform-admin review, to the provider
that charged the original payment.

The orchestrator implements:
1. Intake of refund requests (amount and state validation)
2. Admin approve/reject with a compare-and-swap guard on the request
3. Credential routing (tenant credential for orders, platform credential
   for subscription charges)
4. Provider refund with an idempotency key
5. Downstream effects, audit log, owner notification, customer receipt
6. Direct refunds by the store owner without review

Two-phase shape:
    Phase 1: CAS pending -> processing (no provider call yet)
    Phase 2: Provider refund, outside any transaction
    Phase 3: Record completion and downstream effects. A database error
             here is logged and never undoes the provider refund.

Usage:
    from payments.services import RefundOrchestrator

    outcome = RefundOrchestrator().process_refund_request(
        request_id,
        action="approve",
        actor=request.user,
    )
    outcome.to_response()
    # {"success": True, "refund_id": "...", "amount": Decimal("50.00"),
    #  "provider": "mercadopago", "message": "..."}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from django.db import DatabaseError, transaction
from django.db.models import Sum
from django.utils import timezone

from core.helpers import format_brl
from core.services import BaseService

from notifications.models import NotificationType
from notifications.services import NotificationService
from payments.credentials import PlatformPaymentConfig, get_tenant_credential
from payments.exceptions import (
    AlreadyProcessedError,
    CredentialsMissingError,
    ForbiddenError,
    ProviderError,
    RefundRequestNotFoundError,
    RefundValidationError,
)
from payments.idempotency import claim_refund_request, transition_subscription_payment
from payments.models import RefundRequest, SubscriptionPayment
from payments.providers import build_refund_idempotency_key, get_provider_client
from payments.state_machines import (
    PaymentProvider,
    RefundAction,
    RefundKind,
    RefundRequestStatus,
    SubscriptionPaymentStatus,
)
from stores.models import ActivityLog, Order, OrderPaymentStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from authentication.models import User
    from payments.providers import PaymentProviderClient, ProviderCredential, RefundResult


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

OPEN_REQUEST_STATUSES = (RefundRequestStatus.PENDING, RefundRequestStatus.PROCESSING)

AUDIT_REFUND_APPROVED = "refund_approved"
AUDIT_REFUND_REJECTED = "refund_rejected"
AUDIT_DIRECT_REFUND = "direct_refund"

PROVIDER_LABELS = {
    PaymentProvider.MERCADOPAGO: "Mercado Pago",
    PaymentProvider.PICPAY: "PicPay",
}

SUBSCRIPTION_LABEL_PREFIX = "Subscription - "


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundOutcome:
    """
    Result of a refund action.

    Attributes:
        success: Always True for returned outcomes; failures raise
        message: Human-readable summary
        refund_id: Provider refund id (approve/direct only)
        amount: Amount refunded (approve/direct only)
        provider: Provider that executed the refund (approve/direct only)
    """

    success: bool
    message: str
    refund_id: str | None = None
    amount: Decimal | None = None
    provider: str | None = None

    def to_response(self) -> dict[str, Any]:
        response: dict[str, Any] = {"success": self.success}
        if self.refund_id is not None:
            response["refund_id"] = self.refund_id
        if self.amount is not None:
            response["amount"] = self.amount
        if self.provider is not None:
            response["provider"] = self.provider
        response["message"] = self.message
        return response


# =============================================================================
# Orchestrator
# =============================================================================


class RefundOrchestrator(BaseService):
    """
    Coordinates refund requests and their execution.

    Every failure is raised as a payments.exceptions error. Once the
    provider confirmed a refund, nothing after it can turn the call into
    a failure.

    Attributes:
        platform_config: Platform credential for subscription refunds
        client_factory: provider kind -> client (injectable for tests)
    """

    def __init__(
        self,
        platform_config: PlatformPaymentConfig | None = None,
        client_factory: Callable[[str], PaymentProviderClient] | None = None,
    ):
        self.platform_config = platform_config or PlatformPaymentConfig.from_settings()
        self.client_factory = client_factory or get_provider_client

    # =========================================================================
    # Intake
    # =========================================================================

    def create_refund_request(
        self,
        actor: User,
        *,
        order_id=None,
        subscription_payment_id=None,
        amount: Decimal | None = None,
        reason: str = "",
    ) -> RefundRequest:
        """
        File a refund request for review.

        Exactly one of ``order_id`` / ``subscription_payment_id`` must be
        given. ``amount`` defaults to the full original amount.

        Raises:
            RefundValidationError: Bad target, amount or payment state
            RefundRequestNotFoundError: Target does not exist
            ForbiddenError: Actor does not manage the company
            AlreadyProcessedError: Another request for the payment is open
        """
        if bool(order_id) == bool(subscription_payment_id):
            raise RefundValidationError(
                "Provide either an order or a subscription payment",
                error_code="REFUND_TARGET_REQUIRED",
            )

        if order_id:
            fields = self._order_request_fields(actor, order_id)
        else:
            fields = self._subscription_request_fields(actor, subscription_payment_id)

        original_amount = fields["original_amount"]
        refundable = original_amount - self._refunded_total(fields["company"].pk, fields["payment_id"])
        if refundable <= 0:
            raise RefundValidationError(
                "Payment was already fully refunded",
                error_code="ALREADY_REFUNDED",
                details={"payment_id": fields["payment_id"]},
            )
        requested_amount = self._validate_amount(amount, refundable)
        if fields["payment_provider"] == PaymentProvider.PICPAY and requested_amount < original_amount:
            raise RefundValidationError(
                "PicPay only supports full refunds",
                error_code="PARTIAL_REFUND_UNSUPPORTED",
                details={"amount": str(requested_amount), "original_amount": str(original_amount)},
            )

        if RefundRequest.objects.filter(
            company_id=fields["company"].pk,
            payment_id=fields["payment_id"],
            status__in=OPEN_REQUEST_STATUSES,
        ).exists():
            raise AlreadyProcessedError(
                "A refund request for this payment is already open",
                error_code="REFUND_REQUEST_OPEN",
                details={"payment_id": fields["payment_id"]},
            )

        refund_request = RefundRequest.objects.create(
            requested_amount=requested_amount,
            reason=(reason or "").strip(),
            requested_by=actor,
            **fields,
        )

        self.get_logger().info(
            "Refund request created",
            extra={
                "request_id": str(refund_request.id),
                "company_id": str(refund_request.company_id),
                "refund_kind": refund_request.refund_kind,
                "payment_provider": refund_request.payment_provider,
                "requested_amount": str(requested_amount),
            },
        )
        return refund_request

    # =========================================================================
    # Review
    # =========================================================================

    def process_refund_request(
        self,
        request_id,
        action: str,
        rejection_reason: str | None = None,
        actor: User | None = None,
    ) -> RefundOutcome:
        """
        Approve or reject a pending refund request.

        Args:
            request_id: RefundRequest id
            action: 'approve' or 'reject'
            rejection_reason: Required for 'reject'
            actor: Platform admin performing the review

        Raises:
            ForbiddenError: Actor is not a platform admin
            RefundValidationError: Unknown action or missing reason
            RefundRequestNotFoundError: Unknown request id
            AlreadyProcessedError: Request is no longer PENDING
            CredentialsMissingError: Credential for the refund not configured
            ProviderError: Provider refused or could not be reached
        """
        if actor is None or not getattr(actor, "is_platform_admin", False):
            raise ForbiddenError("Only platform admins can review refund requests")

        if action not in RefundAction.values:
            raise RefundValidationError(
                f"Invalid action: {action!r}",
                error_code="INVALID_REFUND_ACTION",
            )

        refund_request = (
            RefundRequest.objects.select_related("company", "company__owner", "order")
            .filter(pk=request_id)
            .first()
        )
        if refund_request is None:
            raise RefundRequestNotFoundError(
                "Refund request not found",
                details={"request_id": str(request_id)},
            )
        if refund_request.status != RefundRequestStatus.PENDING:
            raise AlreadyProcessedError(
                "Refund request was already processed",
                details={"request_id": str(request_id), "status": refund_request.status},
            )

        if action == RefundAction.REJECT:
            return self._reject(refund_request, rejection_reason, actor)
        return self._approve(refund_request, actor)

    def _reject(self, refund_request: RefundRequest, reason: str | None, actor: User) -> RefundOutcome:
        reason = (reason or "").strip()
        if not reason:
            raise RefundValidationError(
                "Rejection reason is required",
                error_code="REJECTION_REASON_REQUIRED",
            )

        won = claim_refund_request(
            refund_request.id,
            RefundRequestStatus.REJECTED,
            reviewed_by=actor,
            reviewed_at=timezone.now(),
            rejection_reason=reason,
        )
        if not won:
            raise AlreadyProcessedError(
                "Refund request was already processed",
                details={"request_id": str(refund_request.id)},
            )

        self.get_logger().info(
            "Refund request rejected",
            extra={"request_id": str(refund_request.id), "reviewed_by": actor.pk},
        )
        self._audit(
            refund_request,
            AUDIT_REFUND_REJECTED,
            actor,
            {"rejection_reason": reason},
        )
        self._notify_owner(
            refund_request,
            title="Refund request rejected",
            message=(
                f"Your refund request of {format_brl(refund_request.requested_amount)} "
                f"was rejected. Reason: {reason}"
            ),
            notification_type=NotificationType.ALERT,
            suffix="rejected",
        )
        return RefundOutcome(success=True, message="Refund request rejected")

    def _approve(self, refund_request: RefundRequest, actor: User) -> RefundOutcome:
        won = claim_refund_request(
            refund_request.id,
            RefundRequestStatus.PROCESSING,
            reviewed_by=actor,
            reviewed_at=timezone.now(),
        )
        if not won:
            raise AlreadyProcessedError(
                "Refund request was already processed",
                details={"request_id": str(refund_request.id)},
            )

        refund_request = RefundRequest.objects.select_related(
            "company", "company__owner", "order"
        ).get(pk=refund_request.pk)
        return self._execute(refund_request, actor, AUDIT_REFUND_APPROVED, notify_owner=True)

    # =========================================================================
    # Direct Refund
    # =========================================================================

    def direct_refund(self, order_id, reason: str = "", actor: User | None = None) -> RefundOutcome:
        """
        Fully refund a paid order without admin review.

        Available to the store owner and staff of the order's company. A
        RefundRequest row is recorded for history.

        Raises:
            RefundRequestNotFoundError: Unknown order
            ForbiddenError: Actor does not manage the company
            RefundValidationError: Order is not paid
            AlreadyProcessedError: A refund request for the payment is open
            CredentialsMissingError: Tenant credential not configured
            ProviderError: Provider refused or could not be reached
        """
        order = Order.objects.select_related("company", "company__owner").filter(pk=order_id).first()
        if order is None:
            raise RefundRequestNotFoundError(
                "Order not found",
                error_code="ORDER_NOT_FOUND",
                details={"order_id": str(order_id)},
            )
        if actor is None or not order.company.is_managed_by(actor):
            raise ForbiddenError("You cannot refund orders of this store")
        if order.payment_status != OrderPaymentStatus.PAID:
            raise RefundValidationError(
                "Only paid orders can be refunded",
                error_code="ORDER_NOT_PAID",
                details={"payment_status": order.payment_status},
            )
        if not order.payment_reference:
            raise RefundValidationError(
                "Order has no payment reference",
                error_code="PAYMENT_REFERENCE_MISSING",
            )

        provider, payment_id = RefundRequest.split_reference(
            order.payment_reference, order.payment_provider or None
        )
        if RefundRequest.objects.filter(
            company_id=order.company_id,
            payment_id=payment_id,
            status__in=OPEN_REQUEST_STATUSES,
        ).exists():
            raise AlreadyProcessedError(
                "A refund request for this payment is already open",
                error_code="REFUND_REQUEST_OPEN",
            )
        if get_tenant_credential(order.company_id, provider) is None:
            raise CredentialsMissingError(
                f"{PROVIDER_LABELS.get(provider, provider)} credentials are not configured for this store",
            )

        now = timezone.now()
        refund_request = RefundRequest.objects.create(
            company=order.company,
            order=order,
            refund_kind=RefundKind.ORDER,
            payment_provider=provider,
            payment_id=payment_id,
            requested_amount=order.total,
            original_amount=order.total,
            reason=(reason or "").strip(),
            customer_name=order.customer_name,
            requested_by=actor,
            reviewed_by=actor,
            reviewed_at=now,
            status=RefundRequestStatus.PROCESSING,
        )
        return self._execute(refund_request, actor, AUDIT_DIRECT_REFUND, notify_owner=False)

    # =========================================================================
    # Execution
    # =========================================================================

    def _execute(
        self,
        refund_request: RefundRequest,
        actor: User,
        audit_action: str,
        notify_owner: bool,
    ) -> RefundOutcome:
        """Run the provider refund for a request already in PROCESSING."""
        log = self.get_logger()
        provider, reference, credential = self._route(refund_request)

        if credential is None:
            message = self._missing_credential_message(refund_request, provider)
            self._fail(refund_request, message, notify_owner)
            raise CredentialsMissingError(
                message,
                details={"request_id": str(refund_request.id), "provider": provider},
            )

        client = self.client_factory(provider)
        idempotency_key = build_refund_idempotency_key(refund_request.id)
        try:
            token = client.authenticate(credential)
            result = client.issue_refund(
                token,
                reference,
                amount=refund_request.requested_amount,
                original_amount=refund_request.original_amount,
                idempotency_key=idempotency_key,
            )
        except (ProviderError, CredentialsMissingError) as e:
            log.warning(
                "Provider refund failed",
                extra={
                    "request_id": str(refund_request.id),
                    "provider": provider,
                    "error_code": e.error_code,
                },
            )
            self._fail(refund_request, e.message, notify_owner)
            raise

        self._record_success(refund_request, result, actor, audit_action, provider)

        amount = refund_request.requested_amount
        if notify_owner:
            self._notify_owner(
                refund_request,
                title="Refund approved and processed",
                message=f"Your refund of {format_brl(amount)} was approved and processed.",
                notification_type=NotificationType.SUCCESS,
                suffix="completed",
            )
        if refund_request.refund_kind == RefundKind.ORDER and refund_request.order is not None:
            NotificationService.send_refund_receipt(refund_request.order, amount, result.refund_id)

        return RefundOutcome(
            success=True,
            message=f"Refund of {format_brl(amount)} processed successfully",
            refund_id=result.refund_id,
            amount=amount,
            provider=provider,
        )

    def _route(self, refund_request: RefundRequest) -> tuple[str, str, ProviderCredential | None]:
        """
        Pick provider, raw reference and credential for a request.

        Subscription refunds always go to the platform Mercado Pago
        account; order refunds use the company's own credential.
        """
        if refund_request.refund_kind == RefundKind.SUBSCRIPTION:
            _, reference = RefundRequest.split_reference(
                refund_request.payment_id, PaymentProvider.MERCADOPAGO
            )
            return PaymentProvider.MERCADOPAGO, reference, self.platform_config.credential()

        provider, reference = RefundRequest.split_reference(
            refund_request.payment_id, refund_request.payment_provider or None
        )
        return provider, reference, get_tenant_credential(refund_request.company_id, provider)

    @staticmethod
    def _missing_credential_message(refund_request: RefundRequest, provider: str) -> str:
        if refund_request.refund_kind == RefundKind.SUBSCRIPTION:
            return "Platform Mercado Pago credentials are not configured"
        return f"{PROVIDER_LABELS.get(provider, provider)} credentials are not configured for this store"

    def _fail(self, refund_request: RefundRequest, message: str, notify_owner: bool) -> None:
        refund_request.fail(message)
        refund_request.save()
        self.get_logger().error(
            "Refund request failed",
            extra={
                "request_id": str(refund_request.id),
                "payment_id": refund_request.payment_id,
                "error_message": message,
            },
        )
        if notify_owner:
            self._notify_owner(
                refund_request,
                title="Refund could not be processed",
                message=(
                    f"The refund of {format_brl(refund_request.requested_amount)} "
                    f"could not be processed: {message}"
                ),
                notification_type=NotificationType.ALERT,
                suffix="failed",
            )

    def _record_success(
        self,
        refund_request: RefundRequest,
        result: RefundResult,
        actor: User,
        audit_action: str,
        provider: str,
    ) -> None:
        is_subscription = refund_request.refund_kind == RefundKind.SUBSCRIPTION
        details = {
            "refund_id": result.refund_id,
            "refund_amount": str(refund_request.requested_amount),
            "provider": provider,
            "subscription_refund": is_subscription,
            "approved_by": str(actor.pk),
        }
        try:
            with transaction.atomic():
                refund_request.complete(result.refund_id)
                refund_request.save()
                if is_subscription:
                    self._mark_subscription_refunded(refund_request)
                elif refund_request.order is not None:
                    refunded = self._refunded_total(refund_request.company_id, refund_request.payment_id)
                    refund_request.order.apply_refund(partial=refunded < refund_request.original_amount)
                self._audit(refund_request, audit_action, actor, details)
        except DatabaseError:
            self.get_logger().error(
                "Provider refund succeeded but local records could not be updated",
                extra={"request_id": str(refund_request.id), **details},
                exc_info=True,
            )
            return

        self.get_logger().info(
            "Refund completed",
            extra={
                "request_id": str(refund_request.id),
                "payment_id": refund_request.payment_id,
                "order_id": str(refund_request.order_id) if refund_request.order_id else None,
                **details,
            },
        )

    @staticmethod
    def _mark_subscription_refunded(refund_request: RefundRequest) -> None:
        payment_id = refund_request.subscription_payment_id
        if payment_id is None:
            payment_id = (
                SubscriptionPayment.objects.filter(
                    company_id=refund_request.company_id,
                    payment_reference=refund_request.payment_id,
                )
                .values_list("pk", flat=True)
                .first()
            )
        if payment_id is not None:
            transition_subscription_payment(
                payment_id,
                SubscriptionPaymentStatus.PAID,
                SubscriptionPaymentStatus.REFUNDED,
            )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _refunded_total(company_id, payment_id: str) -> Decimal:
        """Sum of completed refunds already issued against a payment."""
        total = RefundRequest.objects.filter(
            company_id=company_id,
            payment_id=payment_id,
            status=RefundRequestStatus.COMPLETED,
        ).aggregate(total=Sum("requested_amount"))["total"]
        return total or Decimal("0.00")

    @staticmethod
    def _validate_amount(amount, refundable: Decimal) -> Decimal:
        if amount is None:
            return refundable
        try:
            value = Decimal(str(amount)).quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError) as e:
            raise RefundValidationError(
                "Invalid refund amount",
                error_code="INVALID_REFUND_AMOUNT",
            ) from e
        if value <= 0 or value > refundable:
            raise RefundValidationError(
                "Refund amount must be greater than zero and at most the amount still refundable",
                error_code="INVALID_REFUND_AMOUNT",
                details={"amount": str(value), "refundable": str(refundable)},
            )
        return value

    @staticmethod
    def _order_request_fields(actor: User, order_id) -> dict[str, Any]:
        order = Order.objects.select_related("company").filter(pk=order_id).first()
        if order is None:
            raise RefundRequestNotFoundError(
                "Order not found",
                error_code="ORDER_NOT_FOUND",
                details={"order_id": str(order_id)},
            )
        if not order.company.is_managed_by(actor):
            raise ForbiddenError("You cannot request refunds for this store")
        if not order.is_refundable:
            raise RefundValidationError(
                "Only paid orders can be refunded",
                error_code="ORDER_NOT_REFUNDABLE",
                details={"payment_status": order.payment_status},
            )
        if not order.payment_reference:
            raise RefundValidationError(
                "Order has no payment reference",
                error_code="PAYMENT_REFERENCE_MISSING",
            )

        provider, payment_id = RefundRequest.split_reference(
            order.payment_reference, order.payment_provider or None
        )
        return {
            "company": order.company,
            "order": order,
            "refund_kind": RefundKind.ORDER,
            "payment_provider": provider,
            "payment_id": payment_id,
            "original_amount": order.total,
            "customer_name": order.customer_name,
        }

    @staticmethod
    def _subscription_request_fields(actor: User, subscription_payment_id) -> dict[str, Any]:
        payment = (
            SubscriptionPayment.objects.select_related("company")
            .filter(pk=subscription_payment_id)
            .first()
        )
        if payment is None:
            raise RefundRequestNotFoundError(
                "Subscription payment not found",
                error_code="SUBSCRIPTION_PAYMENT_NOT_FOUND",
            )
        if payment.company.owner_id != getattr(actor, "pk", None):
            raise ForbiddenError("Only the store owner can request subscription refunds")
        if payment.payment_status != SubscriptionPaymentStatus.PAID or not payment.payment_reference:
            raise RefundValidationError(
                "Only paid subscription charges can be refunded",
                error_code="SUBSCRIPTION_NOT_REFUNDABLE",
            )
        return {
            "company": payment.company,
            "subscription_payment": payment,
            "refund_kind": RefundKind.SUBSCRIPTION,
            "payment_provider": PaymentProvider.MERCADOPAGO,
            "payment_id": payment.payment_reference,
            "original_amount": payment.amount,
            "customer_name": f"{SUBSCRIPTION_LABEL_PREFIX}{payment.plan_name or payment.plan_key}",
        }

    @staticmethod
    def _audit(
        refund_request: RefundRequest,
        action: str,
        actor: User,
        details: dict[str, Any],
    ) -> None:
        ActivityLog.objects.create(
            company_id=refund_request.company_id,
            user=actor,
            action=action,
            entity_type="refund_request",
            entity_id=str(refund_request.id),
            details={
                "request_id": str(refund_request.id),
                "payment_id": refund_request.payment_id,
                "order_id": str(refund_request.order_id) if refund_request.order_id else None,
                **details,
            },
        )

    def _notify_owner(
        self,
        refund_request: RefundRequest,
        title: str,
        message: str,
        notification_type: str,
        suffix: str,
    ) -> None:
        try:
            NotificationService.notify_company_owner(
                refund_request.company,
                title=title,
                message=message,
                notification_type=notification_type,
                data={"refund_request_id": str(refund_request.id)},
                idempotency_key=f"refund:{refund_request.id}:{suffix}",
            )
        except DatabaseError:
            self.get_logger().error(
                "Failed to notify store owner about refund",
                extra={"request_id": str(refund_request.id)},
                exc_info=True,
            )


__all__ = [
    "RefundOrchestrator",
    "RefundOutcome",
]
