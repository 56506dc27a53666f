"""Pytest configuration and fixtures."""

import asyncio
from typing import Any

import pytest

from mcpkit.protocol.framing import deserialize_message, serialize_message
from mcpkit.protocol.messages import JSONRPCMessage
from mcpkit.transport.base import Transport

# Enable async tests without marking each one
pytest_plugins = ["pytest_asyncio"]


class RecordingTransport(Transport):
    """
    Spy transport: records what the session sends and lets tests play the
    peer by injecting messages, errors and a close.

    Sent messages go through the wire codec, so `sent` holds what a real
    peer would have read.
    """

    def __init__(self, fail_sends: bool = False) -> None:
        super().__init__()
        self.sent: list[JSONRPCMessage] = []
        self.fail_sends = fail_sends
        self.close_calls = 0

    async def start(self) -> None:
        self._mark_started()

    async def send(self, message: JSONRPCMessage) -> None:
        self._check_sendable()
        if self.fail_sends:
            raise OSError("send failed")
        self.sent.append(deserialize_message(serialize_message(message)))

    async def close(self) -> None:
        self.close_calls += 1
        await self._deliver_close()

    async def inject(self, message: JSONRPCMessage) -> None:
        """Deliver a message as if the peer had sent it."""
        await self._deliver_message(message)

    async def inject_error(self, error: Exception) -> None:
        await self._deliver_error(error)

    def sent_dicts(self) -> list[dict[str, Any]]:
        return [m.to_dict() for m in self.sent]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def transport():
    """A started-on-connect recording transport."""
    return RecordingTransport()


@pytest.fixture
def make_transport():
    """Factory for extra recording transports."""
    return RecordingTransport


async def _settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Let scheduled handler tasks run to completion."""
    return _settle
