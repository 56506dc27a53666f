"""MCP server session."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from mcpkit.capabilities.client import ClientCapabilities
from mcpkit.capabilities.negotiation import (
    Implementation,
    InitializeResult,
    negotiate_protocol_version,
)
from mcpkit.capabilities.policy import (
    assert_server_notification_capability,
    assert_server_request_capability,
    assert_server_request_handler_capability,
)
from mcpkit.protocol.errors import MCPError
from mcpkit.protocol.messages import JSONRPCNotification, JSONRPCRequest, Method
from mcpkit.protocol.options import RequestOptions
from mcpkit.protocol.session import ProtocolSession, RequestHandlerExtra, maybe_await
from mcpkit.protocol.state import SessionState, SessionStateMachine
from mcpkit.server.options import ServerOptions
from mcpkit.server.types import LoggingLevel

logger = logging.getLogger(__name__)

# Requests a server answers before the handshake completes
PRE_INITIALIZE_METHODS = frozenset({Method.INITIALIZE.value, Method.PING.value})


class Server(ProtocolSession):
    """
    An MCP server on top of a pluggable transport.

    Answers the initialize handshake, records what the client declared,
    and checks everything it sends or handles against the server-role
    capability policy. One Server serves exactly one client connection.

    Usage:
        server = Server(
            Implementation("example", "1.0.0"),
            ServerOptions(capabilities=ServerCapabilities(tools=ServerToolsCapability())),
        )
        server.set_request_handler("tools/list", list_tools)
        await server.connect(StdioServerTransport())
    """

    def __init__(
        self,
        server_info: Implementation,
        options: ServerOptions | None = None,
    ):
        """
        Initialize the server.

        Args:
            server_info: Name and version reported in the initialize result.
            options: Capabilities, instructions and session options.
        """
        options = options or ServerOptions()

        self.server_info = server_info
        self.capabilities = options.capabilities
        self.instructions = options.instructions

        self._client_capabilities: ClientCapabilities | None = None
        self._client_info: Implementation | None = None
        self._protocol_version: str | None = None
        self._logging_level: LoggingLevel | None = None
        self._state = SessionStateMachine()
        self._state.on_transition(self._log_state_change)

        self.on_initialized: Callable[[], Awaitable[None] | None] | None = None
        self.on_close_callback: Callable[[], Awaitable[None] | None] | None = None

        super().__init__(options)

        self.set_request_handler(Method.INITIALIZE, self._on_initialize)
        self.set_notification_handler(
            Method.NOTIFICATIONS_INITIALIZED, self._on_initialized_notification
        )
        if self.capabilities.logging:
            self.set_request_handler(Method.LOGGING_SET_LEVEL, self._on_set_level)

    @property
    def state(self) -> SessionState:
        """Current handshake state."""
        return self._state.state

    @property
    def is_initialized(self) -> bool:
        return self._state.is_initialized

    @property
    def client_capabilities(self) -> ClientCapabilities | None:
        """Capabilities the client declared, or None before initialize."""
        return self._client_capabilities

    @property
    def client_info(self) -> Implementation | None:
        """Name and version the client reported, or None before initialize."""
        return self._client_info

    @property
    def protocol_version(self) -> str | None:
        """Negotiated protocol version, or None before initialize."""
        return self._protocol_version

    @property
    def logging_level(self) -> LoggingLevel | None:
        """Minimum level set by the client through logging/setLevel."""
        return self._logging_level

    def _log_state_change(self, old: SessionState, new: SessionState) -> None:
        logger.debug(f"Server state {old} -> {new}")

    def assert_capability_for_method(self, method: str) -> None:
        assert_server_request_capability(method, self._client_capabilities)

    def assert_notification_capability(self, method: str) -> None:
        assert_server_notification_capability(method, self.capabilities)

    def assert_request_handler_capability(self, method: str) -> None:
        assert_server_request_handler_capability(method, self.capabilities)

    def _check_request_allowed(self, request: JSONRPCRequest) -> None:
        if self._state.state != SessionState.UNINITIALIZED:
            return
        if request.method in PRE_INITIALIZE_METHODS:
            return
        logger.warning(f"Rejecting {request}: server not initialized")
        raise MCPError.invalid_request("Server not initialized")

    async def _on_initialize(
        self,
        request: JSONRPCRequest,
        extra: RequestHandlerExtra,
    ) -> InitializeResult:
        if self._state.has_started_handshake:
            raise MCPError.invalid_request("Server already initialized")

        params = request.params or {}
        self._client_capabilities = ClientCapabilities.from_dict(params.get("capabilities"))
        self._client_info = Implementation.from_dict(params.get("clientInfo"))
        self._protocol_version = negotiate_protocol_version(params.get("protocolVersion"))

        self._state.transition(SessionState.INITIALIZING)
        logger.info(
            f"Initialize from {self._client_info} "
            f"(protocol {self._protocol_version})"
        )

        return InitializeResult(
            protocol_version=self._protocol_version,
            capabilities=self.capabilities,
            server_info=self.server_info,
            instructions=self.instructions,
        )

    async def _on_initialized_notification(self, notification: JSONRPCNotification) -> None:
        if self._state.state != SessionState.INITIALIZING:
            logger.warning(f"Ignoring {notification} in state {self._state.state}")
            return

        self._state.transition(SessionState.INITIALIZED)
        logger.info(f"Session with {self._client_info} initialized")

        if self.on_initialized is not None:
            await maybe_await(self.on_initialized())

    async def _on_set_level(
        self,
        request: JSONRPCRequest,
        extra: RequestHandlerExtra,
    ) -> dict[str, Any]:
        level = (request.params or {}).get("level")
        try:
            self._logging_level = LoggingLevel.from_string(level)
        except ValueError as e:
            raise MCPError.invalid_params(str(e))
        logger.debug(f"Client set log level to {self._logging_level.value}")
        return {}

    async def on_close(self) -> None:
        self._state.force_state(SessionState.CLOSED)
        await super().on_close()
        if self.on_close_callback is not None:
            await maybe_await(self.on_close_callback())

    async def ping(self, options: RequestOptions | None = None) -> Any:
        """Ping the client."""
        return await self.request(Method.PING, None, options)

    async def create_message(
        self,
        params: dict[str, Any],
        options: RequestOptions | None = None,
    ) -> Any:
        """
        Ask the client to sample an LLM completion.

        Requires the client to have declared sampling.
        """
        return await self.request(Method.SAMPLING_CREATE_MESSAGE, params, options)

    async def list_roots(
        self,
        params: dict[str, Any] | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        """
        Ask the client for its filesystem roots.

        Requires the client to have declared roots.
        """
        return await self.request(Method.ROOTS_LIST, params, options)

    async def send_logging_message(self, params: dict[str, Any]) -> None:
        """
        Send a log message to the client.

        Messages below the level the client set via logging/setLevel are
        dropped.

        Args:
            params: {"level": ..., "data": ..., "logger"?: ...}
        """
        if self._logging_level is not None:
            level = LoggingLevel.from_string(params.get("level", "info"))
            if level < self._logging_level:
                return
        await self.notify(Method.NOTIFICATIONS_MESSAGE, params)

    async def send_resource_updated(self, uri: str) -> None:
        await self.notify(Method.NOTIFICATIONS_RESOURCES_UPDATED, {"uri": uri})

    async def send_resource_list_changed(self) -> None:
        await self.notify(Method.NOTIFICATIONS_RESOURCES_LIST_CHANGED)

    async def send_tool_list_changed(self) -> None:
        await self.notify(Method.NOTIFICATIONS_TOOLS_LIST_CHANGED)

    async def send_prompt_list_changed(self) -> None:
        await self.notify(Method.NOTIFICATIONS_PROMPTS_LIST_CHANGED)

    def __str__(self) -> str:
        return f"Server({self.server_info}, {self._state.state})"
