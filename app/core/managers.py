"""
Custom QuerySet and Manager classes for soft-deleted models.

Usage:
    from core.managers import SoftDeleteManager

    class Conversation(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()  # Default: excludes deleted
        all_objects = models.Manager()  # Includes deleted

    Conversation.objects.all()          # Only live conversations
    Conversation.all_objects.all()      # Everything, for admin access
    Conversation.objects.deleted()      # Only deleted

Related:
    - core.model_mixins.SoftDeleteMixin: the is_deleted / deleted_at fields
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone


class SoftDeleteQuerySet(models.QuerySet):
    """
    QuerySet that provides soft delete operations.

    delete() marks rows instead of removing them; hard_delete() removes.
    """

    def delete(self) -> tuple[int, dict[str, int]]:
        """
        Soft delete all objects in queryset.

        Returns:
            Tuple of (count, {model_label: count}) matching Django's delete()
        """
        count = self.filter(is_deleted=False).update(
            is_deleted=True,
            deleted_at=timezone.now(),
        )
        return count, {self.model._meta.label: count}

    def hard_delete(self) -> tuple[int, dict[str, int]]:
        """Permanently delete all objects in queryset."""
        return super().delete()

    def deleted(self) -> SoftDeleteQuerySet:
        return self.filter(is_deleted=True)

    def active(self) -> SoftDeleteQuerySet:
        return self.filter(is_deleted=False)


class SoftDeleteManager(models.Manager):
    """
    Manager that hides soft-deleted rows by default.

    Use as the default manager (objects) and keep a plain
    models.Manager() as all_objects for admin and maintenance queries.
    """

    def get_queryset(self) -> SoftDeleteQuerySet:
        return SoftDeleteQuerySet(self.model, using=self._db).filter(is_deleted=False)

    def deleted(self) -> SoftDeleteQuerySet:
        return SoftDeleteQuerySet(self.model, using=self._db).filter(is_deleted=True)
