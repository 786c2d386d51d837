"""
Client-side error hierarchy.

HTTP failures are decoded from the server's failure envelope
({"success": false, "error": ..., "error_code": ...}) and mapped by status:

    ChatClientError (base)
    ├── UnauthorizedError - 401, missing or expired credentials
    ├── NotParticipantError - 403, caller is not in the conversation
    ├── ValidationError - 400, rejected input (also raised locally before sending)
    ├── StoreFailureError - 5xx, the message store failed
    └── TransportFailure - the realtime channel or the network is unavailable

Realtime failures never arrive as error events; the session detects them
as a missing echo and raises nothing, falling back to HTTP instead.
"""

from __future__ import annotations

from typing import Any


class ChatClientError(Exception):
    """
    Base exception for chat client failures.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code from the server envelope
        status_code: HTTP status, None for local failures
    """

    default_error_code: str = "CLIENT_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class UnauthorizedError(ChatClientError):
    default_error_code: str = "UNAUTHORIZED"


class NotParticipantError(ChatClientError):
    default_error_code: str = "NOT_PARTICIPANT"


class ValidationError(ChatClientError):
    default_error_code: str = "VALIDATION_ERROR"


class StoreFailureError(ChatClientError):
    default_error_code: str = "STORE_FAILURE"


class TransportFailure(ChatClientError):
    """Realtime channel closed or network unreachable; use the HTTP path."""

    default_error_code: str = "TRANSPORT_FAILURE"


def error_from_response(status_code: int, body: dict[str, Any] | None) -> ChatClientError:
    """Build the client error for a failed HTTP response."""
    body = body or {}
    message = body.get("error") or body.get("detail") or f"HTTP {status_code}"
    error_code = body.get("error_code")

    if status_code == 401:
        error_class = UnauthorizedError
    elif status_code == 403:
        error_class = NotParticipantError
    elif status_code == 400:
        error_class = ValidationError
    elif status_code >= 500:
        error_class = StoreFailureError
    else:
        error_class = ChatClientError

    return error_class(str(message), error_code=error_code, status_code=status_code)
