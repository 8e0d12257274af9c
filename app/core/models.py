"""
Abstract base model shared by the billing tables.

Every persisted billing record (checkout orders, billing customers, stored
webhook events) needs creation/modification timestamps: the webhook tasks
select stuck and stale rows by them and the admin orders by them.

Usage:
    from core.model_mixins import UUIDPrimaryKeyMixin
    from core.models import BaseModel

    class CheckoutOrder(UUIDPrimaryKeyMixin, BaseModel):
        price_id = models.CharField(max_length=255)

Mixins go before BaseModel so their fields and Meta win.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """Abstract model adding created_at / updated_at, newest first."""

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When the record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the record was last saved",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"
