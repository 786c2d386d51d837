"""
WebSocket transport for the realtime chat channel.

Connects to ws(s)://<host>/ws/chat/ with the access token in the query
string, sends intents as JSON text frames and yields server events.
Any closed or unreachable connection surfaces as TransportFailure, which
tells the session to fall back to HTTP and resync after reconnecting.

Usage:
    async with WebsocketTransport("ws://localhost:8000/ws/chat/", access_token) as transport:
        await transport.send({"type": "join_chat", "conversation_id": 7})
        async for event in transport.events():
            ...
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from chat_client.errors import TransportFailure

logger = logging.getLogger(__name__)


class WebsocketTransport:
    """websockets-based implementation of the RealtimeTransport protocol."""

    def __init__(self, url: str, access_token: str):
        self.url = url
        self.access_token = access_token
        self._connection = None

    @property
    def connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        uri = f"{self.url}?{urlencode({'token': self.access_token})}"
        try:
            self._connection = await websockets.connect(uri)
        except (OSError, InvalidHandshake) as e:
            raise TransportFailure(f"Could not connect to {self.url}: {e}") from e
        logger.info(f"Connected to {self.url}")

    async def send(self, intent: dict[str, Any]) -> None:
        if self._connection is None:
            raise TransportFailure("Realtime channel is not connected")
        try:
            await self._connection.send(json.dumps(intent))
        except ConnectionClosed as e:
            self._connection = None
            raise TransportFailure(f"Realtime channel closed: {e}") from e

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        if self._connection is None:
            raise TransportFailure("Realtime channel is not connected")
        try:
            async for raw in self._connection:
                try:
                    event = json.loads(raw)
                except ValueError:
                    logger.warning("Dropped malformed frame from server")
                    continue
                if isinstance(event, dict):
                    yield event
        except ConnectionClosed as e:
            self._connection = None
            raise TransportFailure(f"Realtime channel closed: {e}") from e

        self._connection = None
        raise TransportFailure("Realtime channel closed")

    async def close(self) -> None:
        if self._connection is not None:
            connection, self._connection = self._connection, None
            await connection.close()

    async def __aenter__(self) -> WebsocketTransport:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
