"""
Protocol definitions for the chat session's collaborators.

ChatSession depends on these interfaces rather than on concrete clients,
so tests drive it with in-memory fakes.

Available Protocols:
    ChatApi: HTTP API (list, open, create, leave, fallback send, mark read)
    RealtimeTransport: Bidirectional event channel

Usage:
    from chat_client.protocols import ChatApi, RealtimeTransport

    class FakeApi:
        def list_conversations(self): ...
        def get_conversation(self, conversation_id): ...
        ...

    api: ChatApi = FakeApi()

Note:
    - ChatApi is synchronous; the session runs its calls in a worker thread
    - RealtimeTransport methods raise TransportFailure when the channel is down
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from typing import Any


@runtime_checkable
class ChatApi(Protocol):
    """
    Protocol for the chat HTTP API.

    Every method returns the "data" member of the success envelope and
    raises a ChatClientError subclass on failure.
    """

    def list_conversations(self) -> list[dict[str, Any]]:
        """Caller's conversations, most recent activity first."""
        ...

    def get_conversation(self, conversation_id: int) -> dict[str, Any]:
        """Conversation with participants and its newest messages."""
        ...

    def create_conversation(
        self,
        participant_ids: list[int],
        name: str = "",
        is_group: bool | None = None,
    ) -> dict[str, Any]:
        ...

    def list_messages(self, conversation_id: int, cursor: str | None = None) -> dict[str, Any]:
        """One page of history: {"next", "previous", "results"}."""
        ...

    def send_message(self, conversation_id: int, content: str) -> dict[str, Any]:
        """Fallback send. Returns the stored message; nothing is broadcast."""
        ...

    def mark_read(self, conversation_id: int) -> int:
        ...

    def leave(self, conversation_id: int) -> None:
        ...


@runtime_checkable
class RealtimeTransport(Protocol):
    """
    Protocol for the realtime channel.

    Example:
        await transport.send({"type": "join_chat", "conversation_id": 7})
        async for event in transport.events():
            ...
    """

    async def send(self, intent: dict[str, Any]) -> None:
        ...

    def events(self) -> AsyncIterator[dict[str, Any]]:
        """Server events in arrival order; raises TransportFailure when closed."""
        ...

    async def close(self) -> None:
        ...
