import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
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
                (
                    "total_amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Total price of the order",
                        max_digits=12,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="CNY", help_text="ISO currency code", max_length=3
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING_PAYMENT", "Pending Payment"),
                            ("PENDING_HOST_CONFIRM", "Pending Host Confirmation"),
                            ("CONFIRMED", "Confirmed"),
                            ("COMPLETED", "Completed"),
                            ("CANCELLED_BY_TRAVELER", "Cancelled by Traveler"),
                            ("CANCELLED_REFUNDED", "Cancelled and Refunded"),
                        ],
                        db_index=True,
                        default="PENDING_PAYMENT",
                        max_length=32,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("UNPAID", "Unpaid"),
                            ("PAID", "Paid"),
                            ("REFUNDING", "Refunding"),
                            ("REFUNDED", "Refunded"),
                        ],
                        db_index=True,
                        default="UNPAID",
                        max_length=16,
                    ),
                ),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("latest_intent_id", models.UUIDField(blank=True, null=True)),
                (
                    "payment_provider",
                    models.CharField(blank=True, max_length=32, null=True),
                ),
                (
                    "last_payment_attempt_status",
                    models.CharField(blank=True, max_length=32, null=True),
                ),
                (
                    "last_payment_attempt_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                (
                    "refund_status",
                    models.CharField(blank=True, max_length=16, null=True),
                ),
                (
                    "refund_amount",
                    models.DecimalField(
                        blank=True, decimal_places=2, max_digits=12, null=True
                    ),
                ),
                ("refund_at", models.DateTimeField(blank=True, null=True)),
                (
                    "host",
                    models.ForeignKey(
                        blank=True,
                        help_text="User hosting this order",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="host_orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "traveler",
                    models.ForeignKey(
                        blank=True,
                        help_text="User paying for this order",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="traveler_orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["payment_status", "status"],
                        name="order_payment_status_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderStatusLog",
            fields=[
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
                (
                    "from_status",
                    models.CharField(
                        choices=[
                            ("PENDING_PAYMENT", "Pending Payment"),
                            ("PENDING_HOST_CONFIRM", "Pending Host Confirmation"),
                            ("CONFIRMED", "Confirmed"),
                            ("COMPLETED", "Completed"),
                            ("CANCELLED_BY_TRAVELER", "Cancelled by Traveler"),
                            ("CANCELLED_REFUNDED", "Cancelled and Refunded"),
                        ],
                        max_length=32,
                    ),
                ),
                (
                    "to_status",
                    models.CharField(
                        choices=[
                            ("PENDING_PAYMENT", "Pending Payment"),
                            ("PENDING_HOST_CONFIRM", "Pending Host Confirmation"),
                            ("CONFIRMED", "Confirmed"),
                            ("COMPLETED", "Completed"),
                            ("CANCELLED_BY_TRAVELER", "Cancelled by Traveler"),
                            ("CANCELLED_REFUNDED", "Cancelled and Refunded"),
                        ],
                        max_length=32,
                    ),
                ),
                (
                    "actor_role",
                    models.CharField(
                        choices=[
                            ("TRAVELER", "Traveler"),
                            ("HOST", "Host"),
                            ("ADMIN", "Admin"),
                            ("SYSTEM", "System"),
                        ],
                        default="SYSTEM",
                        max_length=16,
                    ),
                ),
                ("reason", models.CharField(blank=True, default="", max_length=64)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="status_logs",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order Status Log",
                "verbose_name_plural": "Order Status Logs",
                "ordering": ["-created_at"],
            },
        ),
    ]
