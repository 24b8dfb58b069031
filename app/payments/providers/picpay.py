"""
PicPay provider client (Payment Link API).

PicPay authenticates with OAuth2 client credentials. Tokens are cached in
the Django cache until shortly before they expire, keyed by a hash of the
client id so secrets never appear in cache keys.

The payment-link resource does not place its status at a stable JSON
path, so the status is probed at several locations in order. When none
yields a status, the transactions list of the link is queried instead.

Endpoints:
    POST {PICPAY_OAUTH_BASE}/oauth2/token
    POST {PICPAY_PAYMENTLINK_BASE}/create
    GET  {PICPAY_PAYMENTLINK_BASE}/{id}
    GET  {PICPAY_PAYMENTLINK_BASE}/{id}/transactions
    POST {PICPAY_PAYMENTLINK_BASE}/{id}/cancel
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.core.cache import cache

from core.helpers import hash_string
from payments.exceptions import (
    AlreadyRefundedError,
    CredentialsMissingError,
    NotRefundableError,
    ProviderAuthError,
    ProviderRejectedError,
)
from payments.providers.base import (
    BaseProviderClient,
    RawStatusPayload,
    RefundResult,
    to_decimal,
)
from payments.state_machines import PaymentProvider

if TYPE_CHECKING:
    from collections.abc import Callable

    from payments.providers.base import ProviderCredential

TOKEN_CACHE_PREFIX = "picpay:token:"
TOKEN_EXPIRY_MARGIN_SECONDS = 60
DEFAULT_TOKEN_TTL_SECONDS = 300

REFUNDABLE_STATUSES = frozenset({"paid", "approved", "completed", "settled"})
ALREADY_REFUNDED_STATUSES = frozenset({"refunded", "cancelled", "canceled"})

TRANSACTION_LIST_KEYS = ("transactions", "content", "data", "items")

CHARGE_NAME_MAX_LENGTH = 60


@dataclass
class PaymentLink:
    """
    A PicPay payment link created for a checkout.

    Attributes:
        link_id: Last path segment of the link; the reference used for
            status lookups and cancellation
        payment_url: Page the customer can be redirected to
        txid: PIX transaction id, when issued
        brcode: PIX copy-and-paste code, when issued
        pix_key: PIX key, when issued
        body: Full response body
    """

    link_id: str
    payment_url: str
    txid: str | None = None
    brcode: str | None = None
    pix_key: str | None = None
    body: dict[str, Any] = field(default_factory=dict)


def extract_link_id(link: str | None) -> str | None:
    """Return the last non-empty path segment of a payment link URL."""
    if not isinstance(link, str):
        return None
    parts = [part for part in link.split("/") if part]
    return parts[-1] if parts else None


def _optional_str(body: dict[str, Any], key: str) -> str | None:
    value = body.get(key)
    return value if isinstance(value, str) and value else None


# =============================================================================
# Status Extraction
# =============================================================================


def _nested(*path: str | int) -> Callable[[dict[str, Any]], Any]:
    def getter(body: dict[str, Any]) -> Any:
        value: Any = body
        for key in path:
            if isinstance(key, int):
                if not isinstance(value, list) or len(value) <= key:
                    return None
                value = value[key]
            else:
                if not isinstance(value, dict):
                    return None
                value = value.get(key)
        return value

    return getter


# Order matters: the first strategy returning a non-empty string wins.
STATUS_STRATEGIES: tuple[tuple[str, Callable[[dict[str, Any]], Any]], ...] = (
    ("status", _nested("status")),
    ("charge.status", _nested("charge", "status")),
    ("payment.status", _nested("payment", "status")),
    ("transaction.status", _nested("transaction", "status")),
    ("payments[0].status", _nested("payments", 0, "status")),
    ("transactions[0].status", _nested("transactions", 0, "status")),
)


def extract_status(body: dict[str, Any]) -> tuple[str | None, str | None]:
    """
    Probe a payment-link body for its status.

    Returns:
        (raw_status, strategy_name), or (None, None) when nothing matched
    """
    for name, getter in STATUS_STRATEGIES:
        value = getter(body)
        if isinstance(value, str) and value.strip():
            return value, name
    return None, None


def extract_transaction_status(body: dict[str, Any]) -> tuple[str | None, str | None]:
    """
    Find a status in a transactions-list response.

    The list may sit under any of TRANSACTION_LIST_KEYS; the first entry
    carrying a status wins.
    """
    for key in TRANSACTION_LIST_KEYS:
        entries = body.get(key)
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if isinstance(entry, dict):
                value = entry.get("status")
                if isinstance(value, str) and value.strip():
                    return value, f"{key}[].status"
    return None, None


def _extract_amount(body: dict[str, Any]) -> Decimal | None:
    for getter in (_nested("amount"), _nested("value"), _nested("charge", "amount")):
        amount = to_decimal(getter(body))
        if amount is not None:
            return amount
    return None


# =============================================================================
# Client
# =============================================================================


class PicPayClient(BaseProviderClient):
    """
    PicPay Payment Link API client.

    Refund rules:
        - refunded/cancelled/canceled -> AlreadyRefundedError
        - anything outside paid/approved/completed/settled -> NotRefundableError
        - partial amounts -> ProviderRejectedError
        - otherwise the link is cancelled, which refunds the payer in full;
          the refund id is the link id
    """

    provider = PaymentProvider.PICPAY

    @property
    def oauth_base(self) -> str:
        return getattr(settings, "PICPAY_OAUTH_BASE", "https://checkout-api.picpay.com").rstrip("/")

    @property
    def paymentlink_base(self) -> str:
        return getattr(
            settings,
            "PICPAY_PAYMENTLINK_BASE",
            "https://api.picpay.com/v1/paymentlink",
        ).rstrip("/")

    # =========================================================================
    # Authentication
    # =========================================================================

    @staticmethod
    def token_cache_key(client_id: str) -> str:
        return f"{TOKEN_CACHE_PREFIX}{hash_string(client_id)}"

    def authenticate(self, credential: ProviderCredential) -> str:
        """
        Exchange client credentials for an access token.

        A cached token is reused until ``expires_in`` minus a safety
        margin. Rejections are not retried.
        """
        if not credential.client_id or not credential.client_secret:
            raise CredentialsMissingError(
                "PicPay client credentials are not configured",
                details={"owner": credential.owner},
            )

        cache_key = self.token_cache_key(credential.client_id)
        cached = cache.get(cache_key)
        if cached:
            return cached

        response = self._request(
            "POST",
            f"{self.oauth_base}/oauth2/token",
            operation="authenticate",
            json={
                "grant_type": "client_credentials",
                "client_id": credential.client_id,
                "client_secret": credential.client_secret,
            },
            raise_for_not_found=False,
            log_context={"owner": credential.owner},
        )
        body = self._json(response)
        token = body.get("access_token")
        if not response.ok or not isinstance(token, str) or not token:
            self.get_logger().error(
                "PicPay token exchange failed",
                extra={"owner": credential.owner, "status_code": response.status_code},
            )
            raise ProviderAuthError(
                "Could not obtain a PicPay access token",
                provider=self.provider,
                details={"status_code": response.status_code},
            )

        try:
            expires_in = int(body.get("expires_in") or DEFAULT_TOKEN_TTL_SECONDS)
        except (TypeError, ValueError):
            expires_in = DEFAULT_TOKEN_TTL_SECONDS
        ttl = expires_in - TOKEN_EXPIRY_MARGIN_SECONDS
        if ttl > 0:
            cache.set(cache_key, token, timeout=ttl)
        return token

    # =========================================================================
    # Checkout
    # =========================================================================

    def create_payment_link(
        self,
        token: str,
        *,
        name: str,
        description: str,
        redirect_url: str,
        amount: Decimal,
        expires_on: date,
    ) -> PaymentLink:
        """
        Create a PIX-only payment link.

        ``amount`` is sent in cents (at least 1). ``expires_on`` must be
        after today; PicPay rejects same-day expirations.

        Raises:
            ProviderRejectedError: PicPay refused the charge or returned no link id
        """
        amount_cents = max(1, int((amount * 100).to_integral_value()))
        payload = {
            "charge": {
                "name": name[:CHARGE_NAME_MAX_LENGTH],
                "description": description,
                "redirect_url": redirect_url,
                "payment": {
                    "methods": ["BRCODE"],
                    "brcode_arrangements": ["PIX"],
                },
                "amounts": {"product": amount_cents},
                "options": {
                    "allow_create_pix_key": True,
                    "expired_at": expires_on.isoformat(),
                },
            },
        }

        response = self._request(
            "POST",
            f"{self.paymentlink_base}/create",
            operation="create_payment_link",
            token=token,
            json=payload,
            raise_for_not_found=False,
            log_context={"amount_cents": amount_cents},
        )
        if not response.ok:
            raise self._rejected(response, "Could not create PicPay payment link")

        body = self._json(response)
        payment_url = _optional_str(body, "link") or _optional_str(body, "deeplink")
        link_id = extract_link_id(payment_url)
        if link_id is None:
            self.get_logger().error(
                "PicPay payment link response has no link id",
                extra={"response_keys": sorted(body)},
            )
            raise ProviderRejectedError(
                "PicPay did not return a payment link id",
                provider=self.provider,
            )

        return PaymentLink(
            link_id=link_id,
            payment_url=payment_url,
            txid=_optional_str(body, "txid"),
            brcode=_optional_str(body, "brcode"),
            pix_key=_optional_str(body, "pixKey"),
            body=body,
        )

    # =========================================================================
    # Status
    # =========================================================================

    def get_payment_status(self, token: str, reference: str) -> RawStatusPayload:
        response = self._request(
            "GET",
            f"{self.paymentlink_base}/{reference}",
            operation="get_payment_status",
            token=token,
            log_context={"reference": reference},
        )
        if not response.ok:
            raise self._rejected(response, "Could not fetch payment link from PicPay")

        body = self._json(response)
        raw_status, strategy = extract_status(body)
        if raw_status is None:
            raw_status, strategy = self._lookup_transactions(token, reference)

        self.get_logger().info(
            "PicPay status resolved",
            extra={"reference": reference, "raw_status": raw_status, "strategy": strategy},
        )
        return RawStatusPayload(
            provider=self.provider,
            reference=reference,
            raw_status=raw_status,
            amount=_extract_amount(body),
            body=body,
            strategy=strategy,
        )

    def _lookup_transactions(self, token: str, reference: str) -> tuple[str | None, str | None]:
        response = self._request(
            "GET",
            f"{self.paymentlink_base}/{reference}/transactions",
            operation="list_transactions",
            token=token,
            raise_for_not_found=False,
            log_context={"reference": reference},
        )
        if not response.ok:
            return None, None
        return extract_transaction_status(self._json(response))

    # =========================================================================
    # Refund
    # =========================================================================

    def issue_refund(
        self,
        token: str,
        reference: str,
        amount: Decimal,
        original_amount: Decimal,
        idempotency_key: str,
    ) -> RefundResult:
        if amount < original_amount:
            raise ProviderRejectedError(
                "PicPay payment links only support full refunds",
                provider=self.provider,
                details={"amount": str(amount), "original_amount": str(original_amount)},
            )

        payment = self.get_payment_status(token, reference)
        status = (payment.raw_status or "").strip().lower()

        if status in ALREADY_REFUNDED_STATUSES:
            raise AlreadyRefundedError(
                "This payment was already refunded or cancelled",
                provider=self.provider,
                details={"current_status": status},
            )
        if status not in REFUNDABLE_STATUSES:
            raise NotRefundableError(
                f"Payment cannot be refunded. Current status: {payment.raw_status}",
                current_status=payment.raw_status,
                provider=self.provider,
            )

        response = self._request(
            "POST",
            f"{self.paymentlink_base}/{reference}/cancel",
            operation="issue_refund",
            token=token,
            headers={"X-Idempotency-Key": idempotency_key},
            log_context={
                "reference": reference,
                "amount": str(amount),
                "idempotency_key": idempotency_key,
            },
        )
        if not response.ok:
            raise self._rejected(response, "PicPay rejected the refund")

        body = self._json(response)
        return RefundResult(
            provider=self.provider,
            refund_id=reference,
            amount=amount,
            status=body.get("status") if isinstance(body.get("status"), str) else None,
            body=body,
        )
