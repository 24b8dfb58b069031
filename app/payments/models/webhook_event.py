"""
WebhookEvent model for provider notification tracking.

Stores every notification received from Mercado Pago or PicPay for
idempotent processing and audit trails. Neither provider sends a stable
event id on every delivery, so duplicates are detected by a hash of the
provider name and the raw payload.

Usage:
    from payments.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        event_key=WebhookEvent.build_event_key("picpay", payload),
        defaults={
            "provider": "picpay",
            "event_type": "PAYMENT",
            "payload": payload,
        },
    )

    if not created and event.is_processed:
        # Duplicate delivery - acknowledge without re-processing
        ...
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.helpers import stable_json_hash
from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import PaymentProvider, WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks provider webhook deliveries for idempotent processing.

    Processing Flow:
        1. Notification arrives
        2. Insert/get WebhookEvent by event_key
        3. If exists and PROCESSED -> acknowledge (duplicate)
        4. Set status to PROCESSING
        5. Route to the provider handler
        6. Set status to PROCESSED or FAILED

    Fields:
        provider: Which provider sent the notification
        event_key: Hash of provider + payload, unique
        event_type: Provider event type, when the payload carries one
        payload: Full JSON body as received
        error_message: Error details if processing failed
        retry_count: Number of processing attempts

    Note:
        Webhook responses are always 200 so the provider stops retrying;
        FAILED rows are the only record of a notification that could not
        be applied.
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        db_index=True,
        help_text="Provider that sent the notification",
    )

    event_key = models.CharField(
        max_length=64,
        unique=True,
        help_text="SHA-256 of provider and payload - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        blank=True,
        default="",
        db_index=True,
        help_text="Provider event type (e.g. 'payment', 'PAYMENT')",
    )

    # ==========================================================================
    # Payload
    # ==========================================================================

    payload = models.JSONField(
        help_text="Full webhook payload (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["provider", "created_at"]),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.provider}, {self.event_type}, {self.status})"

    @staticmethod
    def build_event_key(provider: str, payload) -> str:
        """Deterministic idempotency key for a delivery."""
        return stable_json_hash({"provider": provider, "payload": payload})

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processing(self) -> None:
        """
        Mark event as being processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        """
        Mark event as successfully processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        """
        Mark event as failed with error message.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message
