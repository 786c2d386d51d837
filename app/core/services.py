"""
Base service layer patterns for chat business logic.

This module provides the two building blocks every service uses:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with logging and transaction helpers

Service Layer Philosophy:
    Views and consumers handle transport concerns (HTTP, WebSocket frames),
    models hold data, services own the rules. Both the HTTP fallback path and
    the realtime consumer call the same service methods, so a message sent
    either way goes through identical validation.

Pattern Comparison:
    - ServiceResult: expected failures (empty content, not a participant)
    - Exceptions: unexpected failures (database down, bugs)

Usage:
    from core.services import BaseService, ServiceResult

    class MessageService(BaseService):
        @classmethod
        def send_message(cls, conversation, sender, content) -> ServiceResult[Message]:
            if not content.strip():
                return ServiceResult.failure(
                    "Message content cannot be empty",
                    error_code="EMPTY_CONTENT",
                )

            with cls.atomic():
                message = Message.objects.create(...)

            cls.get_logger().info(f"Message {message.id} sent")
            return ServiceResult.success(message)

    # In a view
    result = MessageService.send_message(conversation, request.user, content)
    if result.success:
        return Response(MessageSerializer(result.data).data, status=201)
    return Response(result.to_response(), status=400)

Related:
    - core.exceptions: error hierarchy and the DRF exception handler
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from typing import Any

# Generic type for ServiceResult data
T = TypeVar("T")
U = TypeVar("U")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Use this for expected failures (validation errors, membership checks).
    The error_code is the machine-readable reason clients branch on.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures

    Usage:
        result = MessageService.send_message(conversation, user, "hi")
        if result:
            message = result.data
        else:
            logger.warning(f"Send rejected: {result.error_code}")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def ok(cls, data: T) -> ServiceResult[T]:
        """Alias for success(), use whichever reads better in context."""
        return cls(success=True, data=data)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result.

        Args:
            data: The result data

        Returns:
            ServiceResult with success=True and data set
        """
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors (for validation failures)

        Returns:
            ServiceResult with success=False and error details

        Example:
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                "NOT_PARTICIPANT",
            )
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Args:
            exc: The caught exception
            error_code: Optional error code (defaults to exception class name)
        """
        return cls(
            success=False,
            error=str(exc),
            error_code=error_code or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """
        Convert to the API envelope.

        Success: {"success": true, "data": ...}
        Failure: {"success": false, "error": ..., "error_code": ...}
        """
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def map(self, func: Callable[[T], U]) -> ServiceResult[U]:
        """
        Transform the data if successful.

        Example:
            result = ConversationService.create_conversation(user, [other.id])
            serialized = result.map(lambda c: ConversationSerializer(c).data)
        """
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self  # type: ignore

    def __bool__(self) -> bool:
        """Allow `if result:` as shorthand for `if result.success:`."""
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides:
    - Logging setup per service
    - Database transaction management
    - Exception-to-result conversion

    Design Notes:
        - Use @staticmethod or @classmethod (no instance state)
        - Services are stateless
        - Use ServiceResult for expected failures
        - Raise exceptions for unexpected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Named after the service class (e.g. chat.services.MessageService)
        for easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around Django's transaction.atomic() that makes the
        transaction boundary explicit in service code.

        Example:
            with cls.atomic():
                message = Message.objects.create(...)
                Conversation.objects.filter(pk=...).update(...)
                # If the update fails the message is rolled back too
        """
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
        error_code: str | None = None,
    ) -> ServiceResult:
        """
        Log an exception and convert it to a failed ServiceResult.

        Args:
            exc: The caught exception
            context: Additional context for logging
            log_level: Logging level (default ERROR)
            error_code: Optional code to report instead of the class name
        """
        logger = cls.get_logger()
        message = f"{context}: {exc}" if context else str(exc)
        logger.log(log_level, message, exc_info=True)
        return ServiceResult.from_exception(exc, error_code)

    @classmethod
    def validate_required(cls, **kwargs) -> ServiceResult | None:
        """
        Validate that required fields are provided.

        Returns a failure result if any field is None or a blank string,
        None if all fields are present.

        Example:
            validation = cls.validate_required(content=content)
            if validation:
                return validation
        """
        errors = {}
        for field_name, value in kwargs.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                errors[field_name] = ["This field is required."]

        if errors:
            return ServiceResult.failure(
                "Required fields missing",
                error_code="VALIDATION_ERROR",
                errors=errors,
            )
        return None
