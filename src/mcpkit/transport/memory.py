"""In-process transport pair for tests and embedding."""

from __future__ import annotations

import asyncio
import logging

from mcpkit.protocol.errors import MessageParseError
from mcpkit.protocol.framing import ReadBuffer, serialize_message
from mcpkit.protocol.messages import JSONRPCMessage
from mcpkit.transport.base import SessionError, Transport
from mcpkit.transport.types import TransportEventType

logger = logging.getLogger(__name__)


class InMemoryTransport(Transport):
    """
    One end of an in-process pipe.

    Every message still goes through the newline-delimited wire codec, so
    a session talking over this pair sees exactly what it would see over
    stdio. Closing either end closes both.
    """

    def __init__(self) -> None:
        super().__init__()
        self._peer: InMemoryTransport | None = None
        self._inbox: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._reader_task: asyncio.Task[None] | None = None

    @property
    def peer(self) -> InMemoryTransport | None:
        return self._peer

    async def start(self) -> None:
        self._mark_started()
        self._reader_task = asyncio.create_task(self._read_loop(), name="mcp-memory-reader")

    async def send(self, message: JSONRPCMessage) -> None:
        self._check_sendable()
        if self._peer is None or self._peer.is_closed:
            raise SessionError("Peer transport is closed")

        data = serialize_message(message)
        self._emit_event(TransportEventType.MESSAGE_SENT, data={"bytes": len(data)})
        self._peer._inbox.put_nowait(data)

    def feed(self, data: bytes) -> None:
        """Queue raw wire bytes as if the peer had written them."""
        self._inbox.put_nowait(data)

    async def close(self) -> None:
        if self._closed:
            return

        peer = self._peer
        if peer is not None and not peer.is_closed:
            peer._inbox.put_nowait(None)
        self._inbox.put_nowait(None)

        task = self._reader_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._deliver_close()

    async def _read_loop(self) -> None:
        buffer = ReadBuffer()
        while True:
            data = await self._inbox.get()
            if data is None:
                break

            buffer.append(data)
            while True:
                try:
                    message = buffer.read_message()
                except MessageParseError as e:
                    await self._deliver_error(e)
                    continue
                if message is None:
                    break
                await self._deliver_message(message)

        logger.debug("In-memory peer closed")
        await self._deliver_close()


def create_connected_pair() -> tuple[InMemoryTransport, InMemoryTransport]:
    """
    Create two transports wired to each other.

    Returns:
        (client_side, server_side); what one sends the other receives.
    """
    left = InMemoryTransport()
    right = InMemoryTransport()
    left._peer = right
    right._peer = left
    return left, right
