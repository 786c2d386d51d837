"""
Core base model providing timestamps for all domain models.

Base Classes:
    BaseModel: Abstract model with timestamps (created_at, updated_at)

For soft delete support see core.model_mixins.SoftDeleteMixin.

Usage:
    from core.models import BaseModel
    from core.model_mixins import SoftDeleteMixin

    class Conversation(SoftDeleteMixin, BaseModel):
        title = models.CharField(max_length=255, blank=True)

Note:
    Always list mixins before BaseModel in inheritance.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model providing creation and modification timestamps.

    Fields:
        created_at: Set once when the row is inserted, never changed after
        updated_at: Refreshed on every save
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,  # Index for efficient time-based queries
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"
