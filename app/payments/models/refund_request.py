"""
RefundRequest model for the supervised refund workflow.

A store owner asks for a refund, a platform admin approves or rejects it,
and an approved request is executed against the provider that took the
original payment.

Usage:
    from payments.models import RefundRequest
    from payments.state_machines import PaymentProvider, RefundKind

    request = RefundRequest.objects.create(
        company=company,
        order=order,
        refund_kind=RefundKind.ORDER,
        payment_provider=PaymentProvider.MERCADOPAGO,
        payment_id="1234567890",
        requested_amount=Decimal("40.00"),
        original_amount=Decimal("100.00"),
        reason="Wrong item delivered",
    )

    # Review goes through payments.services.RefundOrchestrator
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import PaymentProvider, RefundKind, RefundRequestStatus

# Legacy discriminators still found on rows created by older clients
LEGACY_SUBSCRIPTION_NAME_PREFIX = "Subscription - "
PICPAY_REFERENCE_PREFIX = "picpay_"
MERCADOPAGO_REFERENCE_PREFIX = "mp_"


class RefundRequest(UUIDPrimaryKeyMixin, BaseModel):
    """
    A refund awaiting or past admin review.

    State Flow:
        PENDING -> REJECTED
        PENDING -> PROCESSING -> COMPLETED
        PENDING -> PROCESSING -> FAILED

    Leaving PENDING is done with a conditional update (see
    payments.idempotency.claim_refund_request) so a replayed admin action
    can never act twice. PROCESSING -> COMPLETED/FAILED uses the FSM
    transitions below.

    Fields:
        refund_kind: ORDER or SUBSCRIPTION, set at creation time
        payment_provider: Provider that charged the payment
        payment_id: Provider payment reference (no namespace prefix)
        requested_amount/original_amount: Partial when requested < original
        refund_id: Provider-assigned refund identifier
        error_message: Provider or configuration error, verbatim
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    company = models.ForeignKey(
        "stores.Company",
        on_delete=models.PROTECT,
        related_name="refund_requests",
        help_text="Company that took the payment",
    )

    order = models.ForeignKey(
        "stores.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="refund_requests",
        help_text="Order being refunded (null for subscription refunds)",
    )

    subscription_payment = models.ForeignKey(
        "payments.SubscriptionPayment",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="refund_requests",
        help_text="Subscription charge being refunded (subscription refunds only)",
    )

    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="refund_requests_created",
        help_text="User who filed the request",
    )

    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="refund_requests_reviewed",
        help_text="Admin who approved or rejected the request",
    )

    # ==========================================================================
    # Routing
    # ==========================================================================

    refund_kind = models.CharField(
        max_length=20,
        choices=RefundKind.choices,
        default=RefundKind.ORDER,
        db_index=True,
        help_text="Whether this refunds an order or a subscription charge",
    )

    payment_provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        help_text="Provider that processed the original payment",
    )

    payment_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Provider payment reference",
    )

    # ==========================================================================
    # Amounts & Details
    # ==========================================================================

    requested_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text="Amount to refund",
    )

    original_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text="Amount originally charged",
    )

    reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the refund was requested",
    )

    customer_name = models.CharField(
        max_length=200,
        blank=True,
        default="",
        help_text="Customer (or plan label) shown to reviewers",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundRequestStatus.PENDING,
        choices=RefundRequestStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the request (managed by FSM and CAS updates)",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    # ==========================================================================
    # Review & Outcome
    # ==========================================================================

    reviewed_at = models.DateTimeField(null=True, blank=True)

    rejection_reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason given by the reviewer when rejecting",
    )

    refund_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Provider-assigned refund identifier",
    )

    error_message = models.TextField(
        blank=True,
        default="",
        help_text="Failure reason, preserved verbatim for operators",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the provider confirmed the refund",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund Request"
        verbose_name_plural = "Refund Requests"
        indexes = [
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["company", "status"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(requested_amount__gt=0),
                name="refund_request_amount_positive",
            ),
            models.CheckConstraint(
                condition=Q(requested_amount__lte=F("original_amount")),
                name="refund_request_amount_within_original",
            ),
        ]

    def __str__(self) -> str:
        return f"RefundRequest({self.id}, {self.status}, {self.requested_amount})"

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
        source=RefundRequestStatus.PROCESSING,
        target=RefundRequestStatus.COMPLETED,
    )
    def complete(self, refund_id: str):
        """
        Record the provider's confirmation.

        Transition: PROCESSING -> COMPLETED
        """
        self.refund_id = refund_id
        self.processed_at = timezone.now()
        self.error_message = ""

    @transition(
        field=status,
        source=RefundRequestStatus.PROCESSING,
        target=RefundRequestStatus.FAILED,
    )
    def fail(self, error_message: str):
        """
        Record a terminal failure.

        Transition: PROCESSING -> FAILED

        A failed request is not re-opened; the owner files a new one.
        """
        self.error_message = error_message

    # ==========================================================================
    # Properties & Helpers
    # ==========================================================================

    @property
    def is_partial(self) -> bool:
        return self.requested_amount < self.original_amount

    @property
    def is_subscription_refund(self) -> bool:
        return self.refund_kind == RefundKind.SUBSCRIPTION

    @staticmethod
    def infer_kind(customer_name: str | None) -> str:
        """
        Classify a request from the legacy customer-name convention.

        Only used when a client files a request without an explicit kind.
        """
        if customer_name and customer_name.startswith(LEGACY_SUBSCRIPTION_NAME_PREFIX):
            return RefundKind.SUBSCRIPTION
        return RefundKind.ORDER

    @staticmethod
    def split_reference(reference: str, default_provider: str | None = None) -> tuple[str, str]:
        """
        Split a namespaced order payment reference into (provider, raw id).

        ``picpay_abc`` -> (picpay, abc); ``mp_123`` -> (mercadopago, 123).
        Unprefixed references fall back to ``default_provider`` or
        Mercado Pago.
        """
        if reference.startswith(PICPAY_REFERENCE_PREFIX):
            return PaymentProvider.PICPAY, reference[len(PICPAY_REFERENCE_PREFIX):]
        if reference.startswith(MERCADOPAGO_REFERENCE_PREFIX):
            return PaymentProvider.MERCADOPAGO, reference[len(MERCADOPAGO_REFERENCE_PREFIX):]
        return default_provider or PaymentProvider.MERCADOPAGO, reference
