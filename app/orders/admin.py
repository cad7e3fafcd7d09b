"""
Order admin configuration.

Payment fields are read-only here: they are written by the payment engine.
"""

from django.contrib import admin

from orders.models import Order, OrderStatusLog


class OrderStatusLogInline(admin.TabularInline):
    model = OrderStatusLog
    extra = 0
    can_delete = False
    readonly_fields = ["from_status", "to_status", "actor_role", "reason", "created_at"]


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin configuration for Order."""

    list_display = [
        "id",
        "traveler",
        "host",
        "total_amount",
        "currency",
        "status",
        "payment_status",
        "created_at",
    ]
    list_filter = ["status", "payment_status", "payment_provider"]
    search_fields = ["id", "traveler__email", "host__email"]
    readonly_fields = [
        "id",
        "payment_status",
        "paid_at",
        "latest_intent_id",
        "payment_provider",
        "last_payment_attempt_status",
        "last_payment_attempt_at",
        "refund_status",
        "refund_amount",
        "refund_at",
        "created_at",
        "updated_at",
    ]
    inlines = [OrderStatusLogInline]
    ordering = ["-created_at"]
