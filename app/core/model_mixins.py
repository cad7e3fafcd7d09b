"""
Model mixins providing reusable functionality for Django models.

Abstract mixin classes that can be combined with BaseModel. These are
generic infrastructure classes with no domain-specific logic.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class Refund(UUIDPrimaryKeyMixin, BaseModel):
        amount = models.DecimalField(max_digits=12, decimal_places=2)

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    The payment engine relies on this: checkout generates an intent id
    before the provider call so the provider metadata can carry it.

    Fields:
        id: UUIDField as primary key (auto-generated)

    Usage:
        intent_id = uuid.uuid4()
        PaymentIntent.objects.create(id=intent_id, order=order, amount=amount)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True
