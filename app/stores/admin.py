"""
Django admin configuration for store models.

Orders and activity logs are read-mostly here: payment fields are written
by the reconciliation and refund services, never by hand.
"""

from django.contrib import admin

from stores.models import (
    ActivityLog,
    Company,
    Coupon,
    Customer,
    Order,
    OrderItem,
    PaymentSettings,
)


class PaymentSettingsInline(admin.StackedInline):
    model = PaymentSettings
    can_delete = False
    extra = 0


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ("name", "owner", "subscription_status", "subscription_plan", "subscription_end_date")
    list_filter = ("subscription_status",)
    search_fields = ("name", "owner__email")
    raw_id_fields = ("owner",)
    filter_horizontal = ("members",)
    inlines = [PaymentSettingsInline]


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("product_id", "product_name", "quantity", "unit_price", "total_price", "options")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "company", "customer_name", "total", "payment_status", "status", "created_at")
    list_filter = ("payment_status", "status", "source", "payment_provider")
    search_fields = ("id", "customer_name", "customer_phone", "payment_reference")
    readonly_fields = ("payment_status", "payment_reference", "payment_provider", "created_at", "updated_at")
    inlines = [OrderItemInline]


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("name", "phone", "email", "company")
    search_fields = ("name", "phone", "email")


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "company", "current_uses", "max_uses")
    search_fields = ("code",)


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ("action", "entity_type", "entity_id", "company", "user", "created_at")
    list_filter = ("action",)
    search_fields = ("entity_id",)
    readonly_fields = ("company", "user", "action", "entity_type", "entity_id", "details", "created_at")

    def has_add_permission(self, request):
        return False
