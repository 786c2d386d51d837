"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    SoftDeleteMixin: Soft delete support (is_deleted, deleted_at)

Usage:
    from core.models import BaseModel
    from core.model_mixins import SoftDeleteMixin
    from core.managers import SoftDeleteManager

    class Conversation(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()
        all_objects = models.Manager()

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone


class SoftDeleteMixin(models.Model):
    """
    Soft delete support for models.

    Instead of removing rows, marks them as deleted. Chat history stays
    in the database after a conversation is abandoned.

    Fields:
        is_deleted: Boolean flag indicating soft delete status
        deleted_at: Timestamp when the record was soft deleted
    """

    is_deleted = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether this record has been soft deleted",
    )
    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Timestamp when this record was soft deleted",
    )

    class Meta:
        abstract = True

    def soft_delete(self) -> None:
        """
        Mark this record as deleted.

        Example:
            conversation.soft_delete()
            assert conversation.is_deleted
        """
        self.is_deleted = True
        self.deleted_at = timezone.now()
        self.save(update_fields=["is_deleted", "deleted_at", "updated_at"])

    def restore(self) -> None:
        """Restore a soft-deleted record."""
        self.is_deleted = False
        self.deleted_at = None
        self.save(update_fields=["is_deleted", "deleted_at", "updated_at"])
