"""MCP client session."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mcpkit.capabilities.client import ClientCapabilities
from mcpkit.capabilities.negotiation import (
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    Implementation,
    IncompatibleProtocolError,
    InitializeResult,
    NegotiationResult,
)
from mcpkit.capabilities.policy import (
    assert_client_notification_capability,
    assert_client_request_capability,
    assert_client_request_handler_capability,
)
from mcpkit.capabilities.server import ServerCapabilities
from mcpkit.protocol.messages import Method
from mcpkit.protocol.options import ProtocolOptions, RequestOptions
from mcpkit.protocol.session import ProtocolSession
from mcpkit.protocol.state import SessionState, SessionStateMachine

if TYPE_CHECKING:
    from mcpkit.transport.base import Transport

logger = logging.getLogger(__name__)


@dataclass
class ClientOptions(ProtocolOptions):
    """Client session options."""

    capabilities: ClientCapabilities = field(default_factory=ClientCapabilities)
    """Capabilities declared in the initialize request."""


class Client(ProtocolSession):
    """
    An MCP client on top of a pluggable transport.

    connect() binds the transport and runs the initialize handshake, so a
    connected client is ready to call the server. Outgoing requests are
    checked against the server's capabilities when strict capabilities are
    enforced.

    Usage:
        client = Client(Implementation("example-client", "1.0.0"))
        await client.connect(StdioClientTransport("my-server"))
        tools = await client.list_tools()
        await client.close()
    """

    def __init__(
        self,
        client_info: Implementation,
        options: ClientOptions | None = None,
    ):
        """
        Initialize the client.

        Args:
            client_info: Name and version sent as clientInfo.
            options: Capabilities and session options.
        """
        options = options or ClientOptions()

        self.client_info = client_info
        self.capabilities = options.capabilities

        self._result: NegotiationResult | None = None
        self._state = SessionStateMachine()
        self._state.on_transition(self._log_state_change)

        super().__init__(options)

    @property
    def state(self) -> SessionState:
        """Current handshake state."""
        return self._state.state

    @property
    def is_initialized(self) -> bool:
        return self._state.is_initialized

    @property
    def negotiation(self) -> NegotiationResult | None:
        """Everything exchanged during the handshake, once completed."""
        return self._result

    @property
    def server_capabilities(self) -> ServerCapabilities | None:
        return self._result.server_capabilities if self._result else None

    @property
    def server_info(self) -> Implementation | None:
        return self._result.server_info if self._result else None

    @property
    def server_instructions(self) -> str | None:
        return self._result.instructions if self._result else None

    @property
    def protocol_version(self) -> str | None:
        return self._result.protocol_version if self._result else None

    def _log_state_change(self, old: SessionState, new: SessionState) -> None:
        logger.debug(f"Client state {old} -> {new}")

    def assert_capability_for_method(self, method: str) -> None:
        assert_client_request_capability(method, self.server_capabilities)

    def assert_notification_capability(self, method: str) -> None:
        assert_client_notification_capability(method, self.capabilities)

    def assert_request_handler_capability(self, method: str) -> None:
        assert_client_request_handler_capability(method, self.capabilities)

    async def connect(self, transport: Transport, timeout: float | None = None) -> None:
        """
        Bind a transport and perform the initialize handshake.

        Args:
            transport: The transport to bind.
            timeout: Timeout for the initialize request (session default
                when None).

        Raises:
            IncompatibleProtocolError: If the server answered with a
                protocol version this client does not support. The
                connection is closed first.
            MCPError: If the initialize request fails.
        """
        await super().connect(transport)

        try:
            self._result = await self._initialize(timeout)
        except BaseException:
            await self.close()
            raise

    async def _initialize(self, timeout: float | None) -> NegotiationResult:
        logger.debug(f"Starting initialize handshake as {self.client_info}")
        self._state.transition(SessionState.INITIALIZING)

        response = await self.request(
            Method.INITIALIZE,
            {
                "protocolVersion": LATEST_PROTOCOL_VERSION,
                "capabilities": self.capabilities.to_dict(),
                "clientInfo": self.client_info.to_dict(),
            },
            RequestOptions(timeout=timeout),
        )

        result = InitializeResult.from_dict(response or {})
        if result.protocol_version not in SUPPORTED_PROTOCOL_VERSIONS:
            raise IncompatibleProtocolError(
                f"Server protocol version '{result.protocol_version}' not supported. "
                f"Supported versions: {SUPPORTED_PROTOCOL_VERSIONS}",
                server_version=result.protocol_version,
            )

        negotiation = NegotiationResult(
            protocol_version=result.protocol_version,
            server_info=result.server_info,
            server_capabilities=result.capabilities,
            client_capabilities=self.capabilities,
            instructions=result.instructions,
        )
        # Capability checks for the notification below read the server caps
        self._result = negotiation

        await self.notify(Method.NOTIFICATIONS_INITIALIZED)
        self._state.transition(SessionState.INITIALIZED)

        logger.info(f"Connected to server: {negotiation}")
        return negotiation

    async def on_close(self) -> None:
        self._state.force_state(SessionState.CLOSED)
        await super().on_close()

    async def ping(self, options: RequestOptions | None = None) -> Any:
        return await self.request(Method.PING, None, options)

    async def list_tools(
        self,
        cursor: str | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        return await self.request(Method.TOOLS_LIST, _paginated(cursor), options)

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        """
        Call a tool on the server.

        Pass RequestOptions(on_progress=...) to receive progress updates
        for long-running tools.
        """
        params: dict[str, Any] = {"name": name, "arguments": arguments or {}}
        return await self.request(Method.TOOLS_CALL, params, options)

    async def list_resources(
        self,
        cursor: str | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        return await self.request(Method.RESOURCES_LIST, _paginated(cursor), options)

    async def list_resource_templates(
        self,
        cursor: str | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        return await self.request(
            Method.RESOURCES_TEMPLATES_LIST, _paginated(cursor), options
        )

    async def read_resource(self, uri: str, options: RequestOptions | None = None) -> Any:
        return await self.request(Method.RESOURCES_READ, {"uri": uri}, options)

    async def subscribe_resource(self, uri: str, options: RequestOptions | None = None) -> Any:
        return await self.request(Method.RESOURCES_SUBSCRIBE, {"uri": uri}, options)

    async def unsubscribe_resource(self, uri: str, options: RequestOptions | None = None) -> Any:
        return await self.request(Method.RESOURCES_UNSUBSCRIBE, {"uri": uri}, options)

    async def list_prompts(
        self,
        cursor: str | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        return await self.request(Method.PROMPTS_LIST, _paginated(cursor), options)

    async def get_prompt(
        self,
        name: str,
        arguments: dict[str, str] | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        params: dict[str, Any] = {"name": name}
        if arguments is not None:
            params["arguments"] = arguments
        return await self.request(Method.PROMPTS_GET, params, options)

    async def complete(
        self,
        ref: dict[str, Any],
        argument: dict[str, str],
        options: RequestOptions | None = None,
    ) -> Any:
        """
        Ask for argument completions.

        Args:
            ref: {"type": "ref/prompt", "name": ...} or
                {"type": "ref/resource", "uri": ...}
            argument: {"name": ..., "value": ...}
        """
        return await self.request(
            Method.COMPLETION_COMPLETE, {"ref": ref, "argument": argument}, options
        )

    async def set_logging_level(self, level: str, options: RequestOptions | None = None) -> Any:
        return await self.request(Method.LOGGING_SET_LEVEL, {"level": level}, options)

    async def send_roots_list_changed(self) -> None:
        await self.notify(Method.NOTIFICATIONS_ROOTS_LIST_CHANGED)

    def __str__(self) -> str:
        return f"Client({self.client_info}, {self._state.state})"


def _paginated(cursor: str | None) -> dict[str, Any] | None:
    return {"cursor": cursor} if cursor is not None else None
