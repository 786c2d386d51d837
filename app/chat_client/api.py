"""
HTTP client for the chat API.

Wraps the /api/v1/ endpoints with a requests.Session carrying the bearer
token. Responses are unwrapped from the {"success": true, "data": ...}
envelope; failures raise the ChatClientError subclass matching the
status code.

Usage:
    tokens = HttpChatApi.obtain_tokens("http://localhost:8000", email, password)
    api = HttpChatApi("http://localhost:8000", tokens["access"])

    conversations = api.list_conversations()
    message = api.send_message(conversation_id, "hello")
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from chat_client.errors import TransportFailure, error_from_response

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class HttpChatApi:
    """
    requests-based implementation of the ChatApi protocol.

    Attributes:
        base_url: Server root, e.g. "http://localhost:8000"
        timeout: Per-request timeout in seconds
    """

    api_prefix = "/api/v1"

    def __init__(
        self,
        base_url: str,
        access_token: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["Authorization"] = f"Bearer {access_token}"

    @classmethod
    def obtain_tokens(
        cls,
        base_url: str,
        email: str,
        password: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> dict[str, str]:
        """Exchange credentials for an access/refresh token pair."""
        url = f"{base_url.rstrip('/')}{cls.api_prefix}/auth/token/"
        try:
            response = requests.post(
                url, json={"email": email, "password": password}, timeout=timeout
            )
        except requests.exceptions.RequestException as e:
            raise TransportFailure(f"Token request failed: {e}") from e

        body = _json_body(response)
        if not response.ok:
            raise error_from_response(response.status_code, body)
        return body

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{self.api_prefix}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise TransportFailure(f"Request to {path} failed: {e}") from e

        body = _json_body(response)
        if not response.ok or body.get("success") is False:
            raise error_from_response(response.status_code, body)
        return body.get("data")

    # =========================================================================
    # Conversations
    # =========================================================================

    def list_conversations(self) -> list[dict[str, Any]]:
        return self._request("GET", "/chats/")

    def get_conversation(self, conversation_id: int) -> dict[str, Any]:
        return self._request("GET", f"/chats/{conversation_id}/")

    def create_conversation(
        self,
        participant_ids: list[int],
        name: str = "",
        is_group: bool | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"participant_ids": list(participant_ids)}
        if name:
            payload["name"] = name
        if is_group is not None:
            payload["is_group"] = is_group
        return self._request("POST", "/chats/", json=payload)

    def leave(self, conversation_id: int) -> None:
        self._request("DELETE", f"/chats/{conversation_id}/leave/")

    def mark_read(self, conversation_id: int) -> int:
        data = self._request("POST", f"/chats/{conversation_id}/read/")
        return data["marked_read"]

    # =========================================================================
    # Messages
    # =========================================================================

    def list_messages(self, conversation_id: int, cursor: str | None = None) -> dict[str, Any]:
        params = {"cursor": cursor} if cursor else None
        return self._request("GET", f"/chats/{conversation_id}/messages/", params=params)

    def send_message(self, conversation_id: int, content: str) -> dict[str, Any]:
        return self._request(
            "POST", f"/chats/{conversation_id}/messages/", json={"content": content}
        )

    def get_presence(self, user_id: int) -> dict[str, Any]:
        return self._request("GET", f"/chats/presence/{user_id}/")


def _json_body(response: requests.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
