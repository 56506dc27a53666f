"""Server-Sent Events transports for MCP over HTTP."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator
from urllib.parse import urljoin

import httpx

from mcpkit.protocol.errors import MessageParseError
from mcpkit.protocol.framing import deserialize_message, serialize_message
from mcpkit.protocol.messages import JSONRPCMessage
from mcpkit.transport.base import (
    ConnectionError,
    SessionError,
    TimeoutError,
    Transport,
    TransportError,
)
from mcpkit.transport.types import SSEClientConfig, TransportEventType

logger = logging.getLogger(__name__)

ENDPOINT_EVENT = "endpoint"
MESSAGE_EVENT = "message"


def format_sse_event(event: str, data: str) -> str:
    """Format one SSE frame. Multi-line data is split into data: lines."""
    lines = [f"event: {event}"]
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


def parse_sse_event(event_str: str) -> dict[str, str] | None:
    """
    Parse a single SSE event into its components.

    SSE format:
        event: <event-type>
        data: <data>
        id: <id>

    Returns:
        Dict with the event, data, id and retry fields present, or None
        for an empty or comment-only block.
    """
    if not event_str.strip():
        return None

    event: dict[str, str] = {}
    data_lines: list[str] = []

    for line in event_str.split("\n"):
        line = line.rstrip("\r")
        if not line or line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "data":
            data_lines.append(value)
        elif field in ("event", "id", "retry"):
            event[field] = value

    if data_lines:
        event["data"] = "\n".join(data_lines)

    return event if event else None


async def iter_sse_events(chunks: AsyncIterator[str]) -> AsyncIterator[dict[str, str]]:
    """Split a text stream into parsed SSE events (delimited by blank lines)."""
    buffer = ""
    async for chunk in chunks:
        buffer += chunk.replace("\r\n", "\n")

        while "\n\n" in buffer:
            event_str, buffer = buffer.split("\n\n", 1)
            event = parse_sse_event(event_str)
            if event is not None:
                yield event


class SSEServerTransport(Transport):
    """
    Server side of the SSE transport, independent of any web framework.

    Outgoing messages become `message` events on a queue that the HTTP
    layer streams to the client; the first event is always `endpoint`,
    telling the client where to POST. Incoming messages arrive through
    handle_post_message().
    """

    def __init__(self, endpoint: str, session_id: str):
        """
        Initialize the transport.

        Args:
            endpoint: Path the client POSTs messages to.
            session_id: Identifier of this connection, appended to the endpoint.
        """
        super().__init__()
        self.endpoint = endpoint
        self.session_id = session_id
        self._frames: asyncio.Queue[str | None] = asyncio.Queue()

    @property
    def message_url(self) -> str:
        """Endpoint announced to the client, including the session id."""
        separator = "&" if "?" in self.endpoint else "?"
        return f"{self.endpoint}{separator}sessionId={self.session_id}"

    async def start(self) -> None:
        self._mark_started()
        self._frames.put_nowait(format_sse_event(ENDPOINT_EVENT, self.message_url))
        self._emit_event(TransportEventType.SSE_OPENED, data={"session_id": self.session_id})
        logger.debug(f"SSE session {self.session_id} started")

    async def send(self, message: JSONRPCMessage) -> None:
        self._check_sendable()
        data = serialize_message(message).decode("utf-8").rstrip("\n")
        self._frames.put_nowait(format_sse_event(MESSAGE_EVENT, data))
        self._emit_event(TransportEventType.MESSAGE_SENT, data={"session_id": self.session_id})

    async def handle_post_message(self, body: bytes | str) -> None:
        """
        Feed one POSTed message into the session.

        Raises:
            MessageParseError: If the body is not a valid message. The
                error is also reported through the error callback, so a
                malformed request with a readable id still gets an answer.
            SessionError: If the transport is not running.
        """
        self._check_sendable()
        if isinstance(body, str):
            body = body.encode("utf-8")

        try:
            message = deserialize_message(body)
        except MessageParseError as e:
            await self._deliver_error(e)
            raise

        await self._deliver_message(message)

    async def frames(self) -> AsyncIterator[str]:
        """Yield formatted SSE frames until the transport closes."""
        while True:
            frame = await self._frames.get()
            if frame is None:
                break
            yield frame

    async def close(self) -> None:
        if self._closed:
            return
        self._frames.put_nowait(None)
        self._emit_event(TransportEventType.SSE_CLOSED, data={"session_id": self.session_id})
        await self._deliver_close()


class SSEClientTransport(Transport):
    """
    Client side of the SSE transport.

    Opens a streaming GET to the server's SSE endpoint with httpx, waits
    for the `endpoint` event, then POSTs each outgoing message to that
    endpoint. Incoming `message` events are delivered in order.
    """

    def __init__(self, config: SSEClientConfig):
        super().__init__()
        self.config = config
        self._client: httpx.AsyncClient | None = None
        self._sse_task: asyncio.Task[None] | None = None
        self._endpoint: str | None = None
        self._endpoint_ready: asyncio.Future[str] | None = None
        self._closing = False

    @property
    def endpoint(self) -> str | None:
        """URL messages are POSTed to, once announced by the server."""
        return self._endpoint

    async def start(self) -> None:
        self._mark_started()

        timeout = httpx.Timeout(
            connect=self.config.connect_timeout,
            read=None,
            write=self.config.timeout,
            pool=self.config.timeout,
        )
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers=self.config.headers,
            verify=self.config.verify_ssl,
        )
        self._endpoint_ready = asyncio.get_running_loop().create_future()
        self._sse_task = asyncio.create_task(self._process_sse_stream(), name="mcp-sse-reader")

        try:
            self._endpoint = await asyncio.wait_for(
                self._endpoint_ready,
                timeout=self.config.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            await self.close()
            raise TimeoutError(
                f"No endpoint event from {self.config.url} within {self.config.connect_timeout}s",
                cause=e,
            ) from e
        except TransportError:
            await self.close()
            raise

        self._emit_event(TransportEventType.SESSION_ESTABLISHED, data={"endpoint": self._endpoint})
        logger.info(f"SSE connected to {self.config.url}, posting to {self._endpoint}")

    async def send(self, message: JSONRPCMessage) -> None:
        self._check_sendable()
        if self._client is None or self._endpoint is None:
            raise SessionError("SSE endpoint not established")

        body = serialize_message(message)
        try:
            response = await self._client.post(
                self._endpoint,
                content=body,
                headers={"Content-Type": "application/json"},
                timeout=self.config.timeout,
            )
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Request timed out: {e}", cause=e) from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error: {e}", cause=e) from e

        if response.status_code >= 400:
            raise TransportError(f"HTTP {response.status_code}: {response.text}")

        self._emit_event(TransportEventType.MESSAGE_SENT, data={"bytes": len(body)})

    async def close(self) -> None:
        if self._closed or self._closing:
            return
        self._closing = True

        task = self._sse_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._sse_task = None

        if self._client is not None:
            await self._client.aclose()
            self._client = None

        await self._deliver_close()

    async def _process_sse_stream(self) -> None:
        """Read the event stream until it ends or the transport closes."""
        assert self._client is not None
        try:
            async with self._client.stream(
                "GET",
                self.config.url,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.status_code >= 400:
                    raise ConnectionError(f"HTTP {response.status_code} opening SSE stream")

                self._emit_event(TransportEventType.SSE_OPENED, data={"url": self.config.url})
                async for event in iter_sse_events(response.aiter_text()):
                    await self._handle_event(event)

        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            await self._stream_failed(ConnectionError(f"SSE stream failed: {e}", cause=e))
        except TransportError as e:
            await self._stream_failed(e)
        finally:
            self._emit_event(TransportEventType.SSE_CLOSED)

        if self._endpoint_ready is not None and not self._endpoint_ready.done():
            self._endpoint_ready.set_exception(
                ConnectionError("SSE stream ended before the endpoint event")
            )
        if not self._closing:
            await self.close()

    async def _stream_failed(self, error: TransportError) -> None:
        # Before the endpoint arrives, start() is the one waiting to hear about it
        if self._endpoint_ready is not None and not self._endpoint_ready.done():
            self._endpoint_ready.set_exception(error)
        elif not self._closing:
            await self._deliver_error(error)

    async def _handle_event(self, event: dict[str, str]) -> None:
        kind = event.get("event", MESSAGE_EVENT)
        data = event.get("data", "")

        if kind == ENDPOINT_EVENT:
            endpoint = urljoin(self.config.url, data.strip())
            if self._endpoint_ready is not None and not self._endpoint_ready.done():
                self._endpoint_ready.set_result(endpoint)
            return

        if kind != MESSAGE_EVENT:
            logger.debug(f"Ignoring SSE event {kind!r}")
            return

        try:
            message = deserialize_message(data.encode("utf-8"))
        except MessageParseError as e:
            await self._deliver_error(e)
            return

        await self._deliver_message(message)
