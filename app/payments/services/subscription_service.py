"""
Subscription reconciliation service.

Checks a platform plan charge against the platform's Mercado Pago account
and, once it is approved, activates the company's plan. No Order is
created. When the charge is settled (paid or failed) the response tells
the client to drop the polling reference it stored, so a later visit does
not re-poll a finished cycle.

Usage:
    from payments.services import SubscriptionReconciliationService

    outcome = SubscriptionReconciliationService().reconcile(payment_id, company.id)
    outcome.to_response()
    # {"paid": True, "status": "paid", "plan": "pro", "message": "...", "clear_reference": True}
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.exceptions import NotFoundError
from core.services import BaseService

from payments.credentials import PlatformPaymentConfig
from payments.exceptions import CredentialsMissingError, ProviderError
from payments.idempotency import transition_subscription_payment
from payments.models import SubscriptionPayment
from payments.normalizer import normalize_status
from payments.providers import get_provider_client
from payments.state_machines import (
    NormalizedStatus,
    PaymentProvider,
    SubscriptionPaymentStatus,
)
from stores.models import Company, SubscriptionStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from payments.providers import PaymentProviderClient


@dataclass
class SubscriptionOutcome:
    """
    Result of one subscription reconciliation.

    Attributes:
        paid: True once the charge is PAID
        status: Current payment status (or the provider's raw status)
        plan: Plan key of the charge
        message: Short human-readable summary for the plans screen
        clear_reference: True when the client should stop polling
    """

    paid: bool
    status: str
    plan: str
    message: str
    clear_reference: bool = False

    def to_response(self) -> dict[str, Any]:
        return asdict(self)


class SubscriptionReconciliationService(BaseService):
    """
    Reconciles platform subscription charges.

    Always uses the platform credential. Status changes are conditional
    updates on ``payment_status`` so a concurrent poll or refund cannot
    be overwritten.

    Attributes:
        platform_config: Platform credential source
        client_factory: provider kind -> client (injectable for tests)
    """

    def __init__(
        self,
        platform_config: PlatformPaymentConfig | None = None,
        client_factory: Callable[[str], PaymentProviderClient] | None = None,
    ):
        self.platform_config = platform_config or PlatformPaymentConfig.from_settings()
        self.client_factory = client_factory or get_provider_client

    def reconcile(self, subscription_payment_id, company_id) -> SubscriptionOutcome:
        """
        Reconcile one subscription charge.

        Raises:
            NotFoundError: Unknown charge for this company
        """
        log = self.get_logger()
        payment = SubscriptionPayment.objects.filter(
            pk=subscription_payment_id,
            company_id=company_id,
        ).first()
        if payment is None:
            raise NotFoundError(
                "Subscription payment not found",
                error_code="SUBSCRIPTION_PAYMENT_NOT_FOUND",
                details={"subscription_payment_id": str(subscription_payment_id)},
            )

        if payment.is_settled:
            return self._settled_outcome(payment)

        credential = self.platform_config.credential()
        if credential is None or not payment.payment_reference:
            log.error(
                "Subscription reconciliation skipped: platform credential or reference missing",
                extra={
                    "subscription_payment_id": str(payment.id),
                    "has_credential": credential is not None,
                },
            )
            return SubscriptionOutcome(
                paid=False,
                status=SubscriptionPaymentStatus.PENDING,
                plan=payment.plan_key,
                message="Payment not confirmed yet",
            )

        client = self.client_factory(PaymentProvider.MERCADOPAGO)
        try:
            token = client.authenticate(credential)
            lookup = client.get_payment_status(token, payment.payment_reference)
        except (ProviderError, CredentialsMissingError) as e:
            log.warning(
                "Provider lookup failed during subscription reconciliation",
                extra={
                    "subscription_payment_id": str(payment.id),
                    "error_code": e.error_code,
                    "error": e.message,
                },
            )
            return SubscriptionOutcome(
                paid=False,
                status=SubscriptionPaymentStatus.PENDING,
                plan=payment.plan_key,
                message="Payment not confirmed yet",
            )

        normalized = normalize_status(PaymentProvider.MERCADOPAGO, lookup.raw_status)
        log.info(
            "Subscription payment status checked",
            extra={
                "subscription_payment_id": str(payment.id),
                "raw_status": lookup.raw_status,
                "normalized": normalized,
            },
        )

        if normalized == NormalizedStatus.APPROVED:
            self._activate(payment)
        elif normalized == NormalizedStatus.CANCELLED:
            transition_subscription_payment(
                payment.id,
                SubscriptionPaymentStatus.PENDING,
                SubscriptionPaymentStatus.FAILED,
            )
        else:
            return SubscriptionOutcome(
                paid=False,
                status=lookup.raw_status or SubscriptionPaymentStatus.PENDING,
                plan=payment.plan_key,
                message="Payment not confirmed yet",
            )

        payment = SubscriptionPayment.objects.get(pk=payment.pk)
        return self._settled_outcome(payment)

    # =========================================================================
    # Internals
    # =========================================================================

    def _activate(self, payment: SubscriptionPayment) -> bool:
        now = timezone.now()
        period_end = now + timedelta(days=getattr(settings, "SUBSCRIPTION_PERIOD_DAYS", 30))

        with transaction.atomic():
            won = transition_subscription_payment(
                payment.id,
                SubscriptionPaymentStatus.PENDING,
                SubscriptionPaymentStatus.PAID,
                paid_at=now,
                period_start=now,
                period_end=period_end,
            )
            if won:
                Company.objects.filter(pk=payment.company_id).update(
                    subscription_status=SubscriptionStatus.ACTIVE,
                    subscription_plan=payment.plan_key,
                    subscription_end_date=period_end,
                    updated_at=now,
                )

        if won:
            self.get_logger().info(
                "Subscription activated",
                extra={
                    "subscription_payment_id": str(payment.id),
                    "company_id": str(payment.company_id),
                    "plan": payment.plan_key,
                    "period_end": period_end.isoformat(),
                },
            )
        return won

    @staticmethod
    def _settled_outcome(payment: SubscriptionPayment) -> SubscriptionOutcome:
        status = payment.payment_status
        if status == SubscriptionPaymentStatus.PAID:
            message = f"Plan {payment.plan_name or payment.plan_key} is active"
        elif status == SubscriptionPaymentStatus.FAILED:
            message = "Payment was not approved"
        elif status == SubscriptionPaymentStatus.REFUNDED:
            message = "Payment was refunded"
        else:
            message = "Payment not confirmed yet"
        return SubscriptionOutcome(
            paid=status == SubscriptionPaymentStatus.PAID,
            status=status,
            plan=payment.plan_key,
            message=message,
            clear_reference=status != SubscriptionPaymentStatus.PENDING,
        )


__all__ = [
    "SubscriptionOutcome",
    "SubscriptionReconciliationService",
]
