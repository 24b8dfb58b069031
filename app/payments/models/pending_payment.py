"""
PendingPayment model for checkouts awaiting provider confirmation.

A PendingPayment is created when a checkout starts, before the customer
is sent to the provider. It carries the serialized order-to-be and is
turned into a real Order exactly once, by whichever writer (browser
poller or provider webhook) wins the idempotency claim.

Usage:
    from payments.models import PendingPayment
    from payments.state_machines import PaymentProvider

    pending = PendingPayment.objects.create(
        company=company,
        provider=PaymentProvider.PICPAY,
        provider_reference="a1b2c3",
        order_payload={"customer_name": "Ana", "items": [...], "total": 25},
    )

    # Claim and materialization go through payments.idempotency and
    # payments.services.ReconciliationService, never direct writes.
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import PaymentProvider, PendingPaymentStatus


class PendingPayment(UUIDPrimaryKeyMixin, BaseModel):
    """
    A checkout awaiting external payment confirmation.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PENDING -> CANCELLED

    Invariants:
        - ``order`` is set if and only if status is COMPLETED (DB check)
        - ``order`` is one-to-one, so a second materialization fails at
          the database even if the status claim were bypassed
        - Rows with a provider reference are never deleted; they are the
          audit trail for polling timeouts and stuck materializations.
          Only a checkout whose payment link could not be created is
          removed, by CheckoutService

    Fields:
        company: Tenant the order belongs to
        provider: Which provider issued the charge
        provider_reference: Provider-side charge/link identifier
        order_payload: Serialized order to create once paid
        order: The materialized Order (COMPLETED only)
        last_provider_status: Raw status seen on the most recent check
        check_count/last_checked_at: Polling diagnostics
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    company = models.ForeignKey(
        "stores.Company",
        on_delete=models.PROTECT,
        related_name="pending_payments",
        help_text="Company the order will belong to",
    )

    order = models.OneToOneField(
        "stores.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="pending_payment",
        help_text="Order materialized from this checkout (set on completion)",
    )

    # ==========================================================================
    # Provider
    # ==========================================================================

    provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        help_text="Payment provider handling this checkout",
    )

    provider_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Provider charge / payment-link identifier",
    )

    last_provider_status = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Raw provider status from the most recent check",
    )

    # ==========================================================================
    # Payload
    # ==========================================================================

    order_payload = models.JSONField(
        default=dict,
        help_text="Serialized order to create once the payment is approved",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PendingPaymentStatus.PENDING,
        choices=PendingPaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the checkout (managed by FSM and CAS updates)",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    # ==========================================================================
    # Timestamps & Diagnostics
    # ==========================================================================

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was materialized",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the provider confirmed cancellation",
    )

    last_checked_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the provider was last queried for this checkout",
    )

    check_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of provider status checks performed",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Pending Payment"
        verbose_name_plural = "Pending Payments"
        indexes = [
            models.Index(fields=["status", "updated_at"]),
            models.Index(fields=["provider", "provider_reference"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(status=PendingPaymentStatus.COMPLETED, order__isnull=False)
                    | (~Q(status=PendingPaymentStatus.COMPLETED) & Q(order__isnull=True))
                ),
                name="pending_payment_order_iff_completed",
            ),
        ]

    def __str__(self) -> str:
        return f"PendingPayment({self.id}, {self.provider}, {self.status})"

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment for optimistic locking.
        """
        is_update = self.pk and not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "version" not in update_fields:
                kwargs["update_fields"] = [*update_fields, "version"]
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PendingPaymentStatus.PROCESSING,
        target=PendingPaymentStatus.COMPLETED,
    )
    def complete(self, order):
        """
        Attach the materialized order.

        Transition: PROCESSING -> COMPLETED

        Only the writer holding the PROCESSING claim calls this.
        """
        self.order = order
        self.completed_at = timezone.now()

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_completed(self) -> bool:
        return self.status == PendingPaymentStatus.COMPLETED

    @property
    def is_cancelled(self) -> bool:
        return self.status == PendingPaymentStatus.CANCELLED
