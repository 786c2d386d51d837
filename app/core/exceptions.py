"""
Application exception hierarchy and the API error envelope.

This module provides:
- A standardized exception hierarchy with machine-readable error codes
- api_exception_handler: DRF EXCEPTION_HANDLER that renders every HTTP
  error as {"success": false, "error": ..., "error_code": ...}

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input validation failures (400)
    ├── NotFoundError - Resource not found (404)
    ├── PermissionDeniedError - Authorization failures (403)
    ├── ConflictError - State conflicts (409)
    └── StoreFailureError - Durable storage unavailable (500)

Usage:
    from core.exceptions import PermissionDeniedError

    raise PermissionDeniedError(
        "You are not a participant in this conversation",
        error_code="NOT_PARTICIPANT",
    )

Note:
    Services normally return ServiceResult for expected failures. These
    exceptions are for the places where raising reads better (permission
    classes, lookups in views) and for translating DRF's own errors into
    the same envelope.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import DatabaseError
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, metadata, etc.)
        status_code: HTTP status used when the error reaches a view
    """

    default_error_code: str = "APPLICATION_ERROR"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to the failure envelope.

        Example:
            {
                "success": False,
                "error": "Conversation not found",
                "error_code": "CONVERSATION_NOT_FOUND",
            }
        """
        result: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Example:
        raise ValidationError("Message content cannot be empty", error_code="EMPTY_CONTENT")
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """Raised when a requested resource is not found."""

    default_error_code: str = "NOT_FOUND"
    status_code: int = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller lacks permission for an operation.

    For authentication failures (missing/invalid token), DRF raises
    NotAuthenticated/AuthenticationFailed; those are rendered as 401 by
    api_exception_handler. Use this for authorization failures such as
    acting on a conversation you do not belong to.
    """

    default_error_code: str = "PERMISSION_DENIED"
    status_code: int = status.HTTP_403_FORBIDDEN


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Example:
        raise ConflictError("User is already a participant", error_code="ALREADY_PARTICIPANT")
    """

    default_error_code: str = "CONFLICT"
    status_code: int = status.HTTP_409_CONFLICT


class StoreFailureError(BaseApplicationError):
    """
    Raised when durable storage cannot complete a read or write.

    Log the original error for debugging but don't expose internal
    details to clients.
    """

    default_error_code: str = "STORE_FAILURE"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


# =============================================================================
# DRF exception handler
# =============================================================================

# DRF exception classes -> error codes for the failure envelope
DRF_ERROR_CODES: dict[type[Exception], str] = {
    drf_exceptions.NotAuthenticated: "UNAUTHORIZED",
    drf_exceptions.AuthenticationFailed: "UNAUTHORIZED",
    drf_exceptions.PermissionDenied: "PERMISSION_DENIED",
    drf_exceptions.NotFound: "NOT_FOUND",
    drf_exceptions.ValidationError: "VALIDATION_ERROR",
    drf_exceptions.MethodNotAllowed: "METHOD_NOT_ALLOWED",
    drf_exceptions.Throttled: "RATE_LIMIT_EXCEEDED",
    drf_exceptions.ParseError: "PARSE_ERROR",
}


def _drf_error_code(exc: Exception) -> str:
    # Permission classes can set a specific code (e.g. "not_participant")
    code = getattr(getattr(exc, "detail", None), "code", None)
    if isinstance(exc, drf_exceptions.PermissionDenied) and code and code != exc.default_code:
        return code.upper()
    for exc_class, mapped in DRF_ERROR_CODES.items():
        if isinstance(exc, exc_class):
            return mapped
    return "API_ERROR"


def _drf_error_message(exc: drf_exceptions.APIException) -> str:
    detail = exc.detail
    if isinstance(detail, dict):
        # simplejwt wraps token errors as {"detail": ..., "code": ..., "messages": [...]}
        if "detail" in detail:
            return str(detail["detail"])
        return "Validation failed"
    if isinstance(detail, list):
        return str(detail[0]) if detail else "Invalid request"
    return str(detail)


def api_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """
    Render every API error in the failure envelope.

    - BaseApplicationError: its own status_code and error_code
    - DRF exceptions: DRF's status, mapped error code, field errors under "errors"
    - DatabaseError: 500 STORE_FAILURE (logged with traceback)
    - Anything else: re-raised by returning None (Django's 500 handling)

    Configured in settings:
        REST_FRAMEWORK = {"EXCEPTION_HANDLER": "core.exceptions.api_exception_handler"}
    """
    if isinstance(exc, BaseApplicationError):
        return Response(exc.to_dict(), status=exc.status_code)

    if isinstance(exc, DatabaseError):
        view = context.get("view")
        logger.exception(f"Store failure in {view.__class__.__name__ if view else 'api'}: {exc}")
        return Response(
            {
                "success": False,
                "error": "The message store is unavailable",
                "error_code": "STORE_FAILURE",
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, Http404):
        exc = drf_exceptions.NotFound()

    response = exception_handler(exc, context)
    if response is None:
        return None

    body: dict[str, Any] = {
        "success": False,
        "error": _drf_error_message(exc),
        "error_code": _drf_error_code(exc),
    }
    if isinstance(exc, drf_exceptions.ValidationError) and isinstance(exc.detail, dict):
        body["errors"] = exc.detail
    response.data = body
    return response
