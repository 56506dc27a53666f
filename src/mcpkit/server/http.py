"""SSE-over-HTTP hosting for MCP servers, built on FastAPI."""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import Response, StreamingResponse

from mcpkit.protocol.errors import MessageParseError
from mcpkit.server.server import Server
from mcpkit.transport.base import SessionError
from mcpkit.transport.sse import SSEServerTransport
from mcpkit.transport.types import TransportEvent, TransportEventType

logger = logging.getLogger(__name__)

SSE_PATH = "/sse"
MESSAGE_PATH = "/message"


class SessionRegistry:
    """
    Live SSE sessions keyed by session id.

    Each open() builds a fresh Server from the factory and binds it to a new
    SSEServerTransport. Entries drop out when their transport closes.
    """

    def __init__(self, server_factory: Callable[[], Server], endpoint: str = MESSAGE_PATH):
        self.server_factory = server_factory
        self.endpoint = endpoint
        self._sessions: dict[str, SSEServerTransport] = {}

    async def open(self) -> SSEServerTransport:
        """Create, register and connect a new session."""
        session_id = uuid.uuid4().hex
        transport = SSEServerTransport(self.endpoint, session_id)

        def forget(event: TransportEvent) -> None:
            if event.type == TransportEventType.CLOSED:
                self._sessions.pop(session_id, None)
                logger.info(f"SSE session {session_id} removed ({len(self)} active)")

        transport.on_event(forget)
        self._sessions[session_id] = transport

        try:
            await self.server_factory().connect(transport)
        except Exception:
            self._sessions.pop(session_id, None)
            raise

        logger.info(f"SSE session {session_id} opened ({len(self)} active)")
        return transport

    def get(self, session_id: str) -> SSEServerTransport | None:
        return self._sessions.get(session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


def create_sse_app(
    server_factory: Callable[[], Server],
    title: str = "mcpkit",
) -> FastAPI:
    """
    Build an app that serves one MCP session per SSE connection.

    GET /sse opens a stream: a fresh Server from server_factory is bound to
    a new SSEServerTransport under a generated session id, and the
    transport's frames are streamed back. POST /message?sessionId=<id>
    feeds a client message into that session.

    Args:
        server_factory: Called once per connection; servers are never shared.
        title: Application title.

    Returns:
        The FastAPI application. Live sessions are at app.state.sessions.
    """
    app = FastAPI(title=title)
    sessions = SessionRegistry(server_factory)
    app.state.sessions = sessions

    @app.get(SSE_PATH)
    async def sse_endpoint(request: Request) -> StreamingResponse:
        transport = await sessions.open()

        async def event_generator():
            try:
                async for frame in transport.frames():
                    yield frame
                    if await request.is_disconnected():
                        logger.info(f"SSE client {transport.session_id} disconnected")
                        break
            finally:
                await transport.close()

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    @app.post(MESSAGE_PATH)
    async def message_endpoint(
        request: Request,
        session_id: str = Query(..., alias="sessionId"),
    ) -> Response:
        transport = sessions.get(session_id)
        if transport is None:
            raise HTTPException(status_code=404, detail="Session not found")

        body = await request.body()
        try:
            await transport.handle_post_message(body)
        except MessageParseError as e:
            raise HTTPException(status_code=400, detail=e.message)
        except SessionError as e:
            raise HTTPException(status_code=404, detail=str(e))

        return Response(status_code=202, content="Accepted")

    return app
