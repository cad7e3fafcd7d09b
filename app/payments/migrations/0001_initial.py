import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models

PROVIDER_CHOICES = [("mock", "Mock"), ("wechat", "WeChat Pay"), ("alipay", "Alipay")]


def timestamp_fields():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
        (
            "id",
            models.UUIDField(
                default=uuid.uuid4,
                editable=False,
                help_text="Unique identifier for this record",
                primary_key=True,
                serialize=False,
            ),
        ),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="PaymentIntent",
            fields=[
                *timestamp_fields(),
                (
                    "provider",
                    models.CharField(choices=PROVIDER_CHOICES, db_index=True, max_length=32),
                ),
                (
                    "provider_intent_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Provider intent id (e.g. pi_mock_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="CNY", max_length=3)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("requires_confirmation", "Requires Confirmation"),
                            ("processing", "Processing"),
                            ("requires_action", "Requires Action"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="requires_confirmation",
                        help_text="Current status of the intent (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("idempotency_key", models.CharField(blank=True, max_length=255, null=True)),
                ("client_secret", models.CharField(blank=True, max_length=255, null=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("last_error", models.TextField(blank=True, null=True)),
                ("last_error_code", models.CharField(blank=True, max_length=64, null=True)),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order this intent collects payment for",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_intents",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Intent",
                "verbose_name_plural": "Payment Intents",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "updated_at"], name="intent_status_updated_idx"),
                    models.Index(fields=["provider", "status"], name="intent_provider_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(
                            status__in=["requires_confirmation", "processing", "requires_action"]
                        ),
                        fields=("order",),
                        name="one_active_intent_per_order",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(provider_intent_id__isnull=False),
                        fields=("provider", "provider_intent_id"),
                        name="unique_provider_intent_id",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(idempotency_key__isnull=False),
                        fields=("order", "idempotency_key"),
                        name="unique_intent_idempotency_key",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(amount__gt=0),
                        name="intent_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                *timestamp_fields(),
                ("provider", models.CharField(choices=PROVIDER_CHOICES, max_length=32)),
                (
                    "provider_txn_id",
                    models.CharField(
                        blank=True,
                        help_text="Provider transaction id (e.g. txn_mock_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="CNY", max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[("succeeded", "Succeeded")],
                        db_index=True,
                        default="succeeded",
                        max_length=16,
                    ),
                ),
                (
                    "intent",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment",
                        to="payments.paymentintent",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(provider_txn_id__isnull=False),
                        fields=("provider", "provider_txn_id"),
                        name="unique_provider_txn_id",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Refund",
            fields=[
                *timestamp_fields(),
                ("provider", models.CharField(choices=PROVIDER_CHOICES, max_length=32)),
                (
                    "provider_refund_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Provider refund id (e.g. rf_mock_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="CNY", max_length=3)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("requested", "Requested"),
                            ("processing", "Processing"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="requested",
                        help_text="Current status of the refund (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("reason", models.CharField(default="requested_by_user", max_length=255)),
                ("idempotency_key", models.CharField(blank=True, max_length=255, null=True)),
                ("last_error", models.TextField(blank=True, null=True)),
                ("attempt_count", models.PositiveIntegerField(default=0)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "intent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="payments.paymentintent",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="orders.order",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="payments.payment",
                    ),
                ),
                (
                    "requested_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["provider", "status"], name="refund_provider_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(provider_refund_id__isnull=False),
                        fields=("provider", "provider_refund_id"),
                        name="unique_provider_refund_id",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(amount__gt=0),
                        name="refund_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentAttempt",
            fields=[
                *timestamp_fields(),
                ("provider", models.CharField(choices=PROVIDER_CHOICES, max_length=32)),
                (
                    "operation",
                    models.CharField(
                        choices=[
                            ("confirm", "Confirm"),
                            ("refund", "Refund"),
                            ("expire", "Expire"),
                            ("webhook", "Webhook"),
                        ],
                        default="confirm",
                        max_length=16,
                    ),
                ),
                ("status", models.CharField(max_length=32)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="CNY", max_length=3)),
                ("idempotency_key", models.CharField(blank=True, max_length=255, null=True)),
                ("error_code", models.CharField(blank=True, max_length=64, null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("actor_role", models.CharField(default="SYSTEM", max_length=16)),
                ("raw_payload", models.JSONField(blank=True, default=dict)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "intent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="attempts",
                        to="payments.paymentintent",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payment_attempts",
                        to="orders.order",
                    ),
                ),
                (
                    "refund",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="attempts",
                        to="payments.refund",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Attempt",
                "verbose_name_plural": "Payment Attempts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["order", "created_at"], name="attempt_order_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                *timestamp_fields(),
                ("provider", models.CharField(choices=PROVIDER_CHOICES, max_length=32)),
                (
                    "event_id",
                    models.CharField(
                        help_text="Unique per provider - the idempotency key for ingestion",
                        max_length=255,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("payment.succeeded", "Payment Succeeded"),
                            ("payment.failed", "Payment Failed"),
                            ("payment.requires_action", "Payment Requires Action"),
                            ("refund.succeeded", "Refund Succeeded"),
                            ("refund.failed", "Refund Failed"),
                        ],
                        db_index=True,
                        max_length=64,
                    ),
                ),
                ("payload", models.JSONField(help_text="Normalized event (JSON)")),
                ("signature", models.CharField(blank=True, max_length=512, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("received", "Received"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="received",
                        max_length=16,
                    ),
                ),
                ("retry_count", models.PositiveSmallIntegerField(default=0)),
                ("last_error", models.TextField(blank=True, null=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "intent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="webhook_events",
                        to="payments.paymentintent",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="webhook_events",
                        to="orders.order",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="webhook_events",
                        to="payments.payment",
                    ),
                ),
                (
                    "refund",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="webhook_events",
                        to="payments.refund",
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("provider", "event_id"),
                        name="unique_provider_event_id",
                    ),
                ],
            },
        ),
    ]
