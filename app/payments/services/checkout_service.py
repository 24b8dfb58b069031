"""
PicPay checkout creation.

Starts a tenant checkout: records the order-to-be as a PendingPayment,
creates a PIX payment link on the company's PicPay account and stores the
link id as the reference later used by the poller and the webhook. When
PicPay refuses the link, the pending row is deleted so no checkout is
left without a provider reference.

Usage:
    from payments.services import CheckoutService

    checkout = CheckoutService().create_picpay_checkout(company_id, order_payload)
    checkout.to_response()
    # {"pendingId": "...", "paymentUrl": "https://...", "qrCode": "000201...",
    #  "mode": "embedded", ...}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.utils import timezone

from core.exceptions import NotFoundError
from core.services import BaseService

from payments.credentials import get_tenant_credential
from payments.exceptions import CredentialsMissingError, ProviderError
from payments.models import PendingPayment
from payments.providers import get_provider_client
from payments.state_machines import PaymentProvider
from stores.models import Company

if TYPE_CHECKING:
    from collections.abc import Callable

    from payments.providers import PaymentProviderClient


CHECKOUT_PAYMENT_METHOD = "picpay"
AVAILABLE_METHODS = ["pix", "credit_card", "picpay_balance"]


@dataclass
class CheckoutLink:
    """
    A created checkout, as shown on the payment screen.

    ``mode`` is 'embedded' when PicPay issued a PIX code the page can
    render itself, otherwise 'redirect' to ``payment_url``.
    """

    pending_id: str
    payment_url: str
    payment_link_id: str
    total: Decimal
    company_name: str
    expires_at: datetime
    txid: str | None = None
    qr_code: str | None = None
    pix_key: str | None = None

    @property
    def mode(self) -> str:
        return "embedded" if self.qr_code else "redirect"

    def to_response(self) -> dict[str, Any]:
        return {
            "pendingId": self.pending_id,
            "paymentUrl": self.payment_url,
            "paymentLinkId": self.payment_link_id,
            "txid": self.txid,
            "qrCode": self.qr_code,
            "pixKey": self.pix_key,
            "expiresAt": self.expires_at.isoformat(),
            "total": self.total,
            "companyName": self.company_name,
            "gateway": PaymentProvider.PICPAY.value,
            "mode": self.mode,
            "availableMethods": AVAILABLE_METHODS,
        }


class CheckoutService(BaseService):
    """
    Creates tenant checkouts on PicPay.

    Attributes:
        client_factory: provider kind -> client (injectable for tests)
    """

    def __init__(self, client_factory: Callable[[str], PaymentProviderClient] | None = None):
        self.client_factory = client_factory or get_provider_client

    def create_picpay_checkout(self, company_id, order_payload: dict[str, Any]) -> CheckoutLink:
        """
        Create a PendingPayment and its PicPay payment link.

        Args:
            company_id: Tenant the order will belong to
            order_payload: Serialized order (snake_case keys, amounts as
                strings) in the shape ``build_order_from_payload`` reads

        Raises:
            NotFoundError: Unknown company
            CredentialsMissingError: PicPay disabled or not configured
            ProviderError: PicPay refused the token or the link; the
                pending row is deleted first
        """
        log = self.get_logger()
        company = Company.objects.filter(pk=company_id).first()
        if company is None:
            raise NotFoundError(
                "Company not found",
                error_code="COMPANY_NOT_FOUND",
                details={"company_id": str(company_id)},
            )

        credential = get_tenant_credential(company.pk, PaymentProvider.PICPAY)
        if credential is None:
            raise CredentialsMissingError(
                "PicPay is not configured for this store",
                details={"company_id": str(company.pk)},
            )

        total = Decimal(str(order_payload["total"]))
        pending = PendingPayment.objects.create(
            company=company,
            provider=PaymentProvider.PICPAY,
            order_payload={
                **order_payload,
                "payment_method": CHECKOUT_PAYMENT_METHOD,
                "source": order_payload.get("source") or "online",
            },
        )

        client = self.client_factory(PaymentProvider.PICPAY)
        try:
            token = client.authenticate(credential)
            link = client.create_payment_link(
                token,
                name=f"Pedido {company.name}",
                description=f"Pedido #{str(pending.id)[:8]}",
                redirect_url=self._redirect_url(pending),
                amount=total,
                expires_on=timezone.localdate() + timedelta(days=1),
            )
        except (ProviderError, CredentialsMissingError) as e:
            log.warning(
                "PicPay link creation failed, discarding pending payment",
                extra={
                    "pending_id": str(pending.id),
                    "company_id": str(company.pk),
                    "error_code": e.error_code,
                },
            )
            pending.delete()
            raise

        PendingPayment.objects.filter(pk=pending.pk).update(
            provider_reference=link.link_id,
            updated_at=timezone.now(),
        )

        log.info(
            "PicPay checkout created",
            extra={
                "pending_id": str(pending.id),
                "company_id": str(company.pk),
                "payment_link_id": link.link_id,
                "total": str(total),
            },
        )
        expiry_minutes = getattr(settings, "PENDING_PAYMENT_EXPIRY_MINUTES", 30)
        return CheckoutLink(
            pending_id=str(pending.id),
            payment_url=link.payment_url,
            payment_link_id=link.link_id,
            total=total,
            company_name=company.name,
            expires_at=timezone.now() + timedelta(minutes=expiry_minutes),
            txid=link.txid,
            qr_code=link.brcode,
            pix_key=link.pix_key,
        )

    @staticmethod
    def _redirect_url(pending: PendingPayment) -> str:
        base = getattr(settings, "CHECKOUT_RETURN_URL", "")
        separator = "&" if "?" in base else "?"
        return f"{base}{separator}payment=success&pending_id={pending.id}"
