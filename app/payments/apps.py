"""
Payments app configuration.

This app provides the payment event processing engine:
- Provider abstraction with a mock reference provider
- Idempotent webhook event store and atomic event processor
- Reconciliation jobs run by Celery beat
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

    engine = None

    def ready(self):
        from payments.engine import PaymentEngine

        self.engine = PaymentEngine.from_settings()
