"""In-memory connection for driving the session layer without sockets."""

import asyncio
from typing import Any
from uuid import uuid4

import msgpack

from tabu.messaging.encoder import encode
from tabu.messaging.protocol import ConnectionProtocol


class MockConnection(ConnectionProtocol):
    """
    Record everything the server sends and let tests feed inbound frames.

    Outbound frames are stored encoded and unpacked on read, so tests see
    exactly what a client would decode.
    """

    def __init__(self, connection_id: str | None = None) -> None:
        self._connection_id = connection_id or str(uuid4())
        self._outbox: list[bytes] = []
        self._inbox: asyncio.Queue[bytes] = asyncio.Queue()
        self._closed = False
        self._close_code: int | None = None
        self._close_reason: str | None = None

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def close_code(self) -> int | None:
        return self._close_code

    @property
    def close_reason(self) -> str | None:
        return self._close_reason

    @property
    def sent_messages(self) -> list[dict[str, Any]]:
        return [msgpack.unpackb(raw, raw=False) for raw in self._outbox]

    def messages_of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent_messages if m.get("type") == message_type]

    def last_message(self) -> dict[str, Any]:
        return self.sent_messages[-1]

    def clear(self) -> None:
        self._outbox.clear()

    async def send_bytes(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionError("connection closed")
        self._outbox.append(data)

    async def receive_bytes(self) -> bytes:
        return await self._inbox.get()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self._closed = True
        self._close_code = code
        self._close_reason = reason

    def feed(self, message: dict[str, Any]) -> None:
        """Queue an inbound frame."""
        self._inbox.put_nowait(encode(message))
