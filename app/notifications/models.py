"""
Notification models.

- Notification: In-app message shown to a store owner (refund outcomes,
  subscription changes)

Design Decisions:
    - Notifications are immutable once created; title and message are
      fully rendered strings
    - recipient CASCADE: notifications go away with the account
    - company SET_NULL: keep the history if a company is removed
    - idempotency_key lets callers retry without duplicating a message
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class NotificationType(models.TextChoices):
    """Visual severity of an in-app notification."""

    INFO = "info", "Info"
    SUCCESS = "success", "Success"
    WARNING = "warning", "Warning"
    ALERT = "alert", "Alert"


class Notification(UUIDPrimaryKeyMixin, BaseModel):
    """
    In-app notification for a user.

    Usage:
        unread = Notification.objects.filter(recipient=user, is_read=False)
    """

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        help_text="User receiving this notification",
    )

    company = models.ForeignKey(
        "stores.Company",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
        help_text="Company the notification is about",
    )

    notification_type = models.CharField(
        max_length=20,
        choices=NotificationType.choices,
        default=NotificationType.INFO,
        help_text="Severity used by the UI",
    )

    title = models.CharField(
        max_length=255,
        help_text="Fully rendered notification title",
    )

    message = models.TextField(
        blank=True,
        default="",
        help_text="Fully rendered notification body",
    )

    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Context data (refund request id, amounts, deep links)",
    )

    is_read = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether recipient has read this notification",
    )

    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Idempotency key to prevent duplicate notifications",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["recipient", "is_read", "-created_at"],
                name="notif_recipient_unread_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["idempotency_key"],
                condition=models.Q(idempotency_key__isnull=False),
                name="notif_idempotency_key_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"Notification({self.notification_type}, {self.title})"
