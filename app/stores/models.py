"""
Store (tenant) models.

This module defines the tenant-side records the payment core works with:
- Company: A tenant (restaurant/store) with its subscription state
- PaymentSettings: Per-company provider credentials (Mercado Pago, PicPay)
- Customer: End customer of a company, matched by phone
- Coupon: Discount coupon with a usage counter
- Order / OrderItem: The business record materialized once payment clears
- ActivityLog: Append-only audit trail of sensitive actions

Ownership:
    Orders are created by payments.services.ReconciliationService. After
    creation the rest of the platform (order management, kitchen display)
    owns them; the refund flow only touches ``payment_status`` and
    ``status`` through Order.apply_refund().
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


# =============================================================================
# Enums
# =============================================================================


class SubscriptionStatus(models.TextChoices):
    """Platform subscription state of a company."""

    TRIAL = "trial", "Trial"
    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past Due"
    EXPIRED = "expired", "Expired"
    CANCELLED = "cancelled", "Cancelled"


class OrderStatus(models.TextChoices):
    """
    Operational status of an order.

    Reconciliation creates orders as CONFIRMED (payment already cleared).
    A full or partial refund forces CANCELLED.
    """

    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PREPARING = "preparing", "Preparing"
    READY = "ready", "Ready"
    OUT_FOR_DELIVERY = "out_for_delivery", "Out for Delivery"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class OrderPaymentStatus(models.TextChoices):
    """Payment status of an order."""

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"


class OrderSource(models.TextChoices):
    """Channel the order came from."""

    ONLINE = "online", "Online"
    TABLE = "table", "Table"


# =============================================================================
# Company
# =============================================================================


class Company(UUIDPrimaryKeyMixin, BaseModel):
    """
    A tenant of the platform.

    Fields:
        owner: Store owner account
        members: Staff accounts allowed to operate the store
        name: Display name
        subscription_status/plan/end_date: Platform plan state, written by
            payments.services.SubscriptionReconciliationService
    """

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="owned_companies",
        help_text="Store owner account",
    )

    members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        blank=True,
        related_name="staff_companies",
        help_text="Staff accounts working for this company",
    )

    name = models.CharField(
        max_length=200,
        help_text="Company display name",
    )

    subscription_status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.TRIAL,
        db_index=True,
        help_text="Platform subscription state",
    )

    subscription_plan = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Key of the active plan (e.g. 'basic', 'pro')",
    )

    subscription_end_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the current paid period ends",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Company"
        verbose_name_plural = "Companies"

    def __str__(self) -> str:
        return self.name

    def is_managed_by(self, user) -> bool:
        """Whether ``user`` is the owner or a staff member of this company."""
        if user is None or not user.is_authenticated:
            return False
        if self.owner_id == user.pk:
            return True
        return self.members.filter(pk=user.pk).exists()


class PaymentSettings(BaseModel):
    """
    Provider credentials configured by a store owner.

    A provider is usable only when it is enabled and its credential fields
    are filled in. Lookups go through payments.credentials, never through
    these fields directly.
    """

    company = models.OneToOneField(
        Company,
        on_delete=models.CASCADE,
        related_name="payment_settings",
        help_text="Company these credentials belong to",
    )

    mercadopago_enabled = models.BooleanField(
        default=False,
        help_text="Whether Mercado Pago checkout is enabled",
    )
    mercadopago_access_token = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Mercado Pago static access token",
    )

    picpay_enabled = models.BooleanField(
        default=False,
        help_text="Whether PicPay checkout is enabled",
    )
    picpay_client_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="PicPay OAuth client id",
    )
    picpay_client_secret = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="PicPay OAuth client secret",
    )

    class Meta:
        verbose_name = "Payment Settings"
        verbose_name_plural = "Payment Settings"

    def __str__(self) -> str:
        return f"PaymentSettings({self.company_id})"


# =============================================================================
# Customers & Coupons
# =============================================================================


class Customer(UUIDPrimaryKeyMixin, BaseModel):
    """End customer of a company, identified by phone within the company."""

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="customers",
    )
    name = models.CharField(max_length=200)
    phone = models.CharField(max_length=30, db_index=True)
    email = models.EmailField(blank=True, default="")

    class Meta:
        ordering = ["name"]
        indexes = [models.Index(fields=["company", "phone"])]

    def __str__(self) -> str:
        return f"{self.name} ({self.phone})"


class Coupon(UUIDPrimaryKeyMixin, BaseModel):
    """Discount coupon. Usage is counted when a paid order uses it."""

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="coupons",
    )
    code = models.CharField(max_length=50)
    current_uses = models.PositiveIntegerField(default=0)
    max_uses = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ["code"]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "code"],
                name="coupon_code_unique_per_company",
            ),
        ]

    def __str__(self) -> str:
        return self.code

    @classmethod
    def increment_usage(cls, coupon_id) -> int:
        """Atomically bump the usage counter. Returns rows updated."""
        return cls.objects.filter(pk=coupon_id).update(
            current_uses=F("current_uses") + 1
        )


# =============================================================================
# Orders
# =============================================================================


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    A customer order, created only after its payment is confirmed.

    Invariant:
        payment_status == REFUNDED implies status == CANCELLED. Enforced in
        save() so no writer can leave a refunded order active.

    Fields:
        payment_reference: Provider reference namespaced per provider
            (``mp_<id>`` or ``picpay_<id>``)
        payment_provider: Provider that charged the order, set explicitly
            at creation time
    """

    company = models.ForeignKey(
        Company,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    customer = models.ForeignKey(
        Customer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )

    # Customer snapshot at checkout time
    customer_name = models.CharField(max_length=200, blank=True, default="")
    customer_phone = models.CharField(max_length=30, blank=True, default="")
    customer_email = models.EmailField(blank=True, default="")
    delivery_address_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="Identifier of the delivery address, null for pickup/table",
    )

    # Status
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        db_index=True,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=OrderPaymentStatus.choices,
        default=OrderPaymentStatus.PENDING,
        db_index=True,
    )
    payment_method = models.CharField(max_length=20, default="pix")
    payment_provider = models.CharField(max_length=20, blank=True, default="")
    payment_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Namespaced provider reference (mp_<id> / picpay_<id>)",
    )

    # Pricing
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=10, decimal_places=2)
    coupon = models.ForeignKey(
        Coupon,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )

    notes = models.TextField(blank=True, default="")
    estimated_delivery_time = models.DateTimeField(null=True, blank=True)
    table_session_id = models.CharField(max_length=64, null=True, blank=True)
    source = models.CharField(
        max_length=10,
        choices=OrderSource.choices,
        default=OrderSource.ONLINE,
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["company", "status"]),
            models.Index(fields=["company", "payment_status"]),
        ]

    def __str__(self) -> str:
        return f"Order({self.id}, {self.payment_status}, {self.total})"

    def save(self, *args, **kwargs):
        if self.payment_status == OrderPaymentStatus.REFUNDED:
            self.status = OrderStatus.CANCELLED
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "status" not in update_fields:
                kwargs["update_fields"] = [*update_fields, "status"]
        super().save(*args, **kwargs)

    def apply_refund(self, partial: bool) -> None:
        """
        Record a completed provider refund on this order.

        Both full and partial refunds cancel the order. Saves only the two
        fields the refund flow is allowed to write.
        """
        self.payment_status = (
            OrderPaymentStatus.PARTIALLY_REFUNDED
            if partial
            else OrderPaymentStatus.REFUNDED
        )
        self.status = OrderStatus.CANCELLED
        self.save(update_fields=["payment_status", "status", "updated_at"])

    @property
    def is_refundable(self) -> bool:
        return self.payment_status in (
            OrderPaymentStatus.PAID,
            OrderPaymentStatus.PARTIALLY_REFUNDED,
        )


class OrderItem(BaseModel):
    """A line of an order."""

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="items",
    )
    product_id = models.CharField(max_length=64)
    product_name = models.CharField(max_length=200, blank=True, default="")
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    options = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.quantity}x {self.product_name or self.product_id}"


# =============================================================================
# Audit
# =============================================================================


class ActivityLog(BaseModel):
    """
    Append-only audit entry for sensitive actions (refunds, approvals).

    Fields:
        action: Short machine-readable action key (e.g. 'refund_approved')
        entity_type/entity_id: What the action touched
        details: Structured context (amounts, provider, reference ids)
    """

    company = models.ForeignKey(
        Company,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="activity_logs",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="activity_logs",
    )
    action = models.CharField(max_length=50, db_index=True)
    entity_type = models.CharField(max_length=50, blank=True, default="")
    entity_id = models.CharField(max_length=64, blank=True, default="")
    details = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["action", "created_at"])]

    def __str__(self) -> str:
        return f"ActivityLog({self.action}, {self.entity_type}:{self.entity_id})"
