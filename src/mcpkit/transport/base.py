"""Abstract base transport and error types."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from mcpkit.transport.types import TransportEvent, TransportEventType

if TYPE_CHECKING:
    from mcpkit.protocol.messages import JSONRPCMessage

logger = logging.getLogger(__name__)

MessageCallback = Callable[["JSONRPCMessage"], Awaitable[None]]
ErrorCallback = Callable[[Exception], Awaitable[None]]
CloseCallback = Callable[[], Awaitable[None]]


class TransportError(Exception):
    """Base exception for transport errors."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ConnectionError(TransportError):
    """Failed to establish the channel."""

    pass


class TimeoutError(TransportError):
    """Connection setup or a send timed out."""

    pass


class SessionError(TransportError):
    """Channel is not started, already closed, or otherwise unusable."""

    pass


class Transport(ABC):
    """
    Abstract base class for MCP transports.

    A transport moves framed JSON-RPC messages over some channel and
    reports what it receives through three callbacks: message, error and
    close. The protocol session installs those callbacks before start().
    Messages must be delivered in the order they arrive, one at a time.
    """

    def __init__(self) -> None:
        self._on_message: MessageCallback | None = None
        self._on_error: ErrorCallback | None = None
        self._on_close: CloseCallback | None = None
        self._event_handlers: list[Callable[[TransportEvent], None]] = []
        self._started = False
        self._closed = False

    def set_on_message(self, callback: MessageCallback | None) -> None:
        """Register the callback receiving each parsed message."""
        self._on_message = callback

    def set_on_error(self, callback: ErrorCallback | None) -> None:
        """Register the callback receiving transport and parse errors."""
        self._on_error = callback

    def set_on_close(self, callback: CloseCallback | None) -> None:
        """Register the callback fired once when the channel closes."""
        self._on_close = callback

    def on_event(self, handler: Callable[[TransportEvent], None]) -> None:
        """
        Register an event handler for transport events.

        Args:
            handler: Callback invoked when transport events occur.
        """
        self._event_handlers.append(handler)

    def _emit_event(
        self,
        type: TransportEventType,
        data: dict[str, Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        """Emit an event to all registered handlers."""
        event = TransportEvent(type=type, timestamp=time.time(), data=data, error=error)
        for handler in self._event_handlers:
            try:
                handler(event)
            except Exception:
                # Observers never affect the transport
                logger.debug("Transport event handler failed", exc_info=True)

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _mark_started(self) -> None:
        """Guard against a second start()."""
        if self._started:
            raise TransportError("Transport already started")
        if self._closed:
            raise SessionError("Transport is closed")
        self._started = True
        self._emit_event(TransportEventType.STARTED)

    async def _deliver_message(self, message: "JSONRPCMessage") -> None:
        """
        Hand a received message to the session.

        Failures raised by the session while dispatching are routed to the
        error callback, so a reader loop never dies on one bad message.
        """
        self._emit_event(
            TransportEventType.MESSAGE_RECEIVED,
            data={"id": getattr(message, "id", None), "method": getattr(message, "method", None)},
        )
        if self._on_message is None:
            logger.warning("Dropping %s: no message callback installed", message)
            return
        try:
            await self._on_message(message)
        except Exception as e:
            await self._deliver_error(e)

    async def _deliver_error(self, error: Exception) -> None:
        self._emit_event(TransportEventType.ERROR, error=error)
        if self._on_error is None:
            logger.error("Transport error with no error callback: %s", error)
            return
        await self._on_error(error)

    async def _deliver_close(self) -> None:
        """Fire the close callback exactly once."""
        if self._closed:
            return
        self._closed = True
        self._emit_event(TransportEventType.CLOSED)
        if self._on_close is not None:
            await self._on_close()

    @abstractmethod
    async def start(self) -> None:
        """
        Begin reading from the channel.

        Raises:
            TransportError: If called more than once.
            ConnectionError: If the channel cannot be opened.
        """
        pass

    @abstractmethod
    async def send(self, message: "JSONRPCMessage") -> None:
        """
        Frame and transmit one message.

        Raises:
            SessionError: If the transport is not started or already closed.
            TransportError: If the write fails.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Terminate the channel and fire the close callback.

        This method should be safe to call multiple times.
        """
        pass

    def _check_sendable(self) -> None:
        if not self._started:
            raise SessionError("Transport not started")
        if self._closed:
            raise SessionError("Transport is closed")

    async def __aenter__(self) -> "Transport":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
