"""Shared broadcast utility for sending messages to room participants."""

from __future__ import annotations

import contextlib
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tabu.messaging.protocol import ConnectionProtocol


async def send_to_connections(
    connections: dict[str, ConnectionProtocol],
    connection_ids: Iterable[str | None],
    message: dict[str, Any],
) -> None:
    """Send a message to each listed connection that is still open.

    Unknown or None ids (disconnected participants) are skipped, and a send
    that fails because the socket died mid-broadcast is ignored so the rest
    of the room still receives the message.
    """
    for connection_id in list(connection_ids):
        if connection_id is None:
            continue
        connection = connections.get(connection_id)
        if connection is None:
            continue
        with contextlib.suppress(RuntimeError, OSError):
            await connection.send_message(message)
