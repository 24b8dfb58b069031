"""
SubscriptionPayment model for platform plan charges.

Each row is one charge a company pays the platform for its plan. The
charge is collected on the platform's own Mercado Pago account, so both
reconciliation and refunds use the platform credential, never the
tenant's.

Usage:
    from payments.models import SubscriptionPayment

    payment = SubscriptionPayment.objects.create(
        company=company,
        plan_key="pro",
        plan_name="Pro",
        amount=Decimal("99.90"),
        payment_reference="1234567890",
    )
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import PaymentProvider, SubscriptionPaymentStatus


class SubscriptionPaymentMethod(models.TextChoices):
    PIX = "pix", "PIX"
    CARD = "card", "Card"


class SubscriptionPayment(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single plan charge.

    State Flow:
        PENDING -> PAID -> REFUNDED
        PENDING -> FAILED

    Status changes are compare-and-swap updates on ``payment_status``
    (see payments.services.subscription_service), so the poller and a
    refund can never overwrite each other.

    Fields:
        plan_key/plan_name: Plan being paid for
        payment_reference: Mercado Pago payment id on the platform account
        period_start/period_end: Paid period, stamped when PAID
    """

    company = models.ForeignKey(
        "stores.Company",
        on_delete=models.PROTECT,
        related_name="subscription_payments",
        help_text="Company paying for the plan",
    )

    plan_key = models.CharField(
        max_length=50,
        help_text="Machine key of the plan (e.g. 'basic', 'pro')",
    )

    plan_name = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Display name of the plan",
    )

    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text="Amount charged",
    )

    payment_method = models.CharField(
        max_length=10,
        choices=SubscriptionPaymentMethod.choices,
        default=SubscriptionPaymentMethod.PIX,
    )

    provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        default=PaymentProvider.MERCADOPAGO,
        help_text="Provider account the charge was collected on",
    )

    payment_status = models.CharField(
        max_length=20,
        choices=SubscriptionPaymentStatus.choices,
        default=SubscriptionPaymentStatus.PENDING,
        db_index=True,
    )

    payment_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Provider payment id",
    )

    paid_at = models.DateTimeField(null=True, blank=True)
    period_start = models.DateTimeField(null=True, blank=True)
    period_end = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription Payment"
        verbose_name_plural = "Subscription Payments"
        indexes = [
            models.Index(fields=["company", "payment_status"]),
        ]

    def __str__(self) -> str:
        return f"SubscriptionPayment({self.id}, {self.plan_key}, {self.payment_status})"

    @property
    def is_settled(self) -> bool:
        """Paid, failed or refunded: nothing left to poll."""
        return self.payment_status != SubscriptionPaymentStatus.PENDING
