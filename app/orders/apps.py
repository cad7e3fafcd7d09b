"""
Orders app configuration.

Holds the order record the payment engine settles against. Only the
payment-related fields are written from this codebase; the rest of the
order lifecycle belongs to the booking flow.
"""

from django.apps import AppConfig


class OrdersConfig(AppConfig):
    """Configuration for the orders application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "orders"
    verbose_name = "Orders"
