"""
Credential resolution for provider calls.

Two scopes exist and must never be mixed:
- Tenant: each company's own Mercado Pago token / PicPay client, stored
  in stores.PaymentSettings. Used for customer orders.
- Platform: the platform's Mercado Pago token, read from settings. Used
  for subscription charges the platform itself collected.

Usage:
    from payments.credentials import PlatformPaymentConfig, get_tenant_credential

    credential = get_tenant_credential(company_id, "picpay")
    if credential is None:
        ...  # provider disabled or not configured

    platform = PlatformPaymentConfig.from_settings()
"""

from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings

from payments.providers import ProviderCredential
from payments.state_machines import PaymentProvider
from stores.models import PaymentSettings

PLATFORM_OWNER = "platform"


@dataclass(frozen=True)
class PlatformPaymentConfig:
    """
    Platform-level payment configuration.

    Built once from settings and injected into the services that need it,
    so tests can pass their own.

    Attributes:
        mercadopago_access_token: Token of the platform Mercado Pago account
    """

    mercadopago_access_token: str = ""

    @classmethod
    def from_settings(cls) -> PlatformPaymentConfig:
        return cls(
            mercadopago_access_token=getattr(settings, "PLATFORM_MERCADOPAGO_ACCESS_TOKEN", "") or "",
        )

    def credential(self) -> ProviderCredential | None:
        """Platform Mercado Pago credential, or None when not configured."""
        if not self.mercadopago_access_token:
            return None
        return ProviderCredential(
            provider=PaymentProvider.MERCADOPAGO,
            access_token=self.mercadopago_access_token,
            owner=PLATFORM_OWNER,
        )

    def __repr__(self) -> str:
        configured = bool(self.mercadopago_access_token)
        return f"PlatformPaymentConfig(mercadopago_configured={configured})"


def get_tenant_credential(company_id, provider: str) -> ProviderCredential | None:
    """
    Resolve a company's credential for one provider.

    Returns None when the company has no payment settings, the provider
    is disabled, or any required field is blank.
    """
    payment_settings = PaymentSettings.objects.filter(company_id=company_id).first()
    if payment_settings is None:
        return None

    owner = str(company_id)
    if provider == PaymentProvider.MERCADOPAGO:
        if not payment_settings.mercadopago_enabled or not payment_settings.mercadopago_access_token:
            return None
        return ProviderCredential(
            provider=provider,
            access_token=payment_settings.mercadopago_access_token,
            owner=owner,
        )

    if provider == PaymentProvider.PICPAY:
        if (
            not payment_settings.picpay_enabled
            or not payment_settings.picpay_client_id
            or not payment_settings.picpay_client_secret
        ):
            return None
        return ProviderCredential(
            provider=provider,
            client_id=payment_settings.picpay_client_id,
            client_secret=payment_settings.picpay_client_secret,
            owner=owner,
        )

    return None


__all__ = [
    "PLATFORM_OWNER",
    "PlatformPaymentConfig",
    "get_tenant_credential",
]
