"""
Core Application - Infrastructure & Base Classes

This app contains infrastructure code shared by the domain apps:

- Generic, reusable base classes (no chat-specific logic)
- The service result type every service returns
- The exception hierarchy and the API error envelope

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - SoftDeleteMixin: Soft delete support (is_deleted, deleted_at)

Managers (import from core.managers):
    - SoftDeleteManager: Filter deleted records by default
    - SoftDeleteQuerySet: QuerySet with soft delete operations

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError, NotFoundError, PermissionDeniedError, ConflictError,
      StoreFailureError
    - api_exception_handler: DRF EXCEPTION_HANDLER rendering the failure envelope

Views (import from core.views):
    - health_check: Database/cache connectivity probe

Usage:
    from core.models import BaseModel
    from core.model_mixins import SoftDeleteMixin
    from core.managers import SoftDeleteManager
    from core.services import BaseService, ServiceResult

    class Conversation(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()
        all_objects = models.Manager()

Note:
    - Business logic should NOT go here. Extend core classes in your domain apps.
    - Models, managers and the DRF-dependent exception handler are NOT
      imported here to avoid AppRegistryNotReady errors. Import them
      directly from their modules.
"""

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

__all__ = [
    "BaseService",
    "ServiceResult",
]
