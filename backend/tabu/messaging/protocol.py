"""Transport-agnostic connection interface."""

from abc import ABC, abstractmethod
from typing import Any

from tabu.messaging.encoder import decode, encode


class ConnectionProtocol(ABC):
    """
    One client connection.

    The session layer only ever talks to this interface, so rooms can be
    driven in tests by an in-memory connection instead of a real socket.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Transient handle for this socket; a reconnect gets a new one."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))

    async def receive_message(self) -> dict[str, Any]:
        return decode(await self.receive_bytes())
