"""Tests for the server session."""

import logging

import pytest

from mcpkit.capabilities.negotiation import Implementation
from mcpkit.capabilities.server import (
    ServerCapabilities,
    ServerResourcesCapability,
    ServerToolsCapability,
)
from mcpkit.protocol.errors import INVALID_PARAMS, INVALID_REQUEST, CapabilityError
from mcpkit.protocol.messages import (
    JSONRPCErrorResponse,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
)
from mcpkit.protocol.state import SessionState
from mcpkit.server import LoggingLevel, Server, ServerOptions

INITIALIZE_PARAMS = {
    "protocolVersion": "2024-11-05",
    "capabilities": {"sampling": {}},
    "clientInfo": {"name": "test-client", "version": "1.0"},
}


def make_server(**capabilities) -> Server:
    return Server(
        Implementation("test-server", "0.1"),
        ServerOptions(capabilities=ServerCapabilities(**capabilities)),
    )


async def handshake(server, transport, settle, params=None):
    await transport.inject(
        JSONRPCRequest(id=0, method="initialize", params=params or INITIALIZE_PARAMS)
    )
    await settle()
    await transport.inject(JSONRPCNotification(method="notifications/initialized"))
    await settle()
    reply = transport.sent[0]
    transport.clear()
    return reply


class TestInitialize:
    """Tests for the initialize handshake."""

    @pytest.mark.asyncio
    async def test_initialize_result(self, transport, settle):
        server = make_server(tools=ServerToolsCapability())
        await server.connect(transport)

        await transport.inject(JSONRPCRequest(id=0, method="initialize", params=INITIALIZE_PARAMS))
        await settle()

        assert transport.sent_dicts() == [
            {
                "jsonrpc": "2.0",
                "id": 0,
                "result": {
                    "protocolVersion": "2024-11-05",
                    "capabilities": {"tools": {"listChanged": False}},
                    "serverInfo": {"name": "test-server", "version": "0.1"},
                },
            }
        ]
        assert server.state == SessionState.INITIALIZING
        assert server.client_info == Implementation("test-client", "1.0")
        assert server.client_capabilities.supports_sampling()
        assert server.protocol_version == "2024-11-05"

    @pytest.mark.asyncio
    async def test_instructions_are_returned(self, transport, settle):
        server = Server(
            Implementation("test-server", "0.1"),
            ServerOptions(instructions="Use the tools"),
        )
        await server.connect(transport)
        reply = await handshake(server, transport, settle)

        assert reply.result["instructions"] == "Use the tools"

    @pytest.mark.asyncio
    async def test_unsupported_version_falls_back(self, transport, settle):
        server = make_server()
        await server.connect(transport)
        reply = await handshake(
            server, transport, settle, {**INITIALIZE_PARAMS, "protocolVersion": "1999-01-01"}
        )

        assert reply.result["protocolVersion"] == "2024-11-05"

    @pytest.mark.asyncio
    async def test_older_supported_version_is_echoed(self, transport, settle):
        server = make_server()
        await server.connect(transport)
        reply = await handshake(
            server, transport, settle, {**INITIALIZE_PARAMS, "protocolVersion": "2024-10-07"}
        )

        assert reply.result["protocolVersion"] == "2024-10-07"
        assert server.protocol_version == "2024-10-07"

    @pytest.mark.asyncio
    async def test_initialized_notification_completes_handshake(self, transport, settle):
        server = make_server()
        calls = []
        server.on_initialized = lambda: calls.append(server.state)
        await server.connect(transport)

        await handshake(server, transport, settle)

        assert server.is_initialized
        assert calls == [SessionState.INITIALIZED]

    @pytest.mark.asyncio
    async def test_malformed_capabilities_are_invalid_params(self, transport, settle):
        server = make_server()
        await server.connect(transport)

        await transport.inject(
            JSONRPCRequest(
                id=0,
                method="initialize",
                params={**INITIALIZE_PARAMS, "capabilities": {"roots": True}},
            )
        )
        await settle()

        reply = transport.sent[0]
        assert isinstance(reply, JSONRPCErrorResponse)
        assert reply.error.code == INVALID_PARAMS
        assert server.state == SessionState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_state_changes_are_logged(self, transport, settle, caplog):
        server = make_server()
        await server.connect(transport)

        with caplog.at_level(logging.DEBUG, logger="mcpkit.server.server"):
            await handshake(server, transport, settle)

        assert "Server state UNINITIALIZED -> INITIALIZING" in caplog.text
        assert "Server state INITIALIZING -> INITIALIZED" in caplog.text

    @pytest.mark.asyncio
    async def test_initialized_before_initialize_is_ignored(self, transport, settle):
        server = make_server()
        calls = []
        server.on_initialized = lambda: calls.append(True)
        await server.connect(transport)

        await transport.inject(JSONRPCNotification(method="notifications/initialized"))
        await settle()

        assert server.state == SessionState.UNINITIALIZED
        assert calls == []

    @pytest.mark.asyncio
    async def test_second_initialize_rejected(self, transport, settle):
        server = make_server()
        await server.connect(transport)
        await handshake(server, transport, settle)

        await transport.inject(JSONRPCRequest(id=1, method="initialize", params=INITIALIZE_PARAMS))
        await settle()

        reply = transport.sent[0]
        assert isinstance(reply, JSONRPCErrorResponse)
        assert reply.error.code == INVALID_REQUEST
        assert reply.error.message == "Server already initialized"
        assert server.is_initialized


class TestLifecycleGate:
    """Tests for requests arriving before initialize."""

    @pytest.mark.asyncio
    async def test_requests_rejected_before_initialize(self, transport, settle):
        server = make_server(tools=ServerToolsCapability())
        server.set_request_handler("tools/list", lambda r, e: {"tools": []})
        await server.connect(transport)

        await transport.inject(JSONRPCRequest(id=5, method="tools/list"))
        await settle()

        reply = transport.sent[0]
        assert reply.id == 5
        assert reply.error.code == INVALID_REQUEST
        assert reply.error.message == "Server not initialized"

    @pytest.mark.asyncio
    async def test_ping_allowed_before_initialize(self, transport, settle):
        server = make_server()
        await server.connect(transport)

        await transport.inject(JSONRPCRequest(id=1, method="ping"))
        await settle()

        assert transport.sent == [JSONRPCResponse(id=1, result={})]

    @pytest.mark.asyncio
    async def test_requests_served_after_initialize(self, transport, settle):
        server = make_server(tools=ServerToolsCapability())
        server.set_request_handler("tools/list", lambda r, e: {"tools": [{"name": "echo"}]})
        await server.connect(transport)
        await handshake(server, transport, settle)

        await transport.inject(JSONRPCRequest(id=2, method="tools/list"))
        await settle()

        assert transport.sent == [JSONRPCResponse(id=2, result={"tools": [{"name": "echo"}]})]


class TestCapabilities:
    """Tests for server-side capability enforcement."""

    def test_handler_registration_requires_capability(self):
        server = make_server()
        with pytest.raises(CapabilityError):
            server.set_request_handler("tools/call", lambda r, e: {})

    @pytest.mark.asyncio
    async def test_sampling_requires_client_capability(self, transport, settle):
        server = make_server()
        await server.connect(transport)
        await handshake(
            server, transport, settle, {**INITIALIZE_PARAMS, "capabilities": {}}
        )

        with pytest.raises(CapabilityError):
            await server.create_message({"messages": [], "maxTokens": 10})
        with pytest.raises(CapabilityError):
            await server.list_roots()
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_sampling_before_initialize_fails(self, transport):
        server = make_server()
        await server.connect(transport)

        with pytest.raises(CapabilityError):
            await server.create_message({"messages": []})
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_resource_notifications_require_resources(self, transport):
        server = make_server()
        await server.connect(transport)

        with pytest.raises(CapabilityError):
            await server.send_resource_updated("file:///a")
        with pytest.raises(CapabilityError):
            await server.send_tool_list_changed()
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_list_changed_notifications(self, transport):
        server = make_server(
            resources=ServerResourcesCapability(list_changed=True),
            tools=ServerToolsCapability(list_changed=True),
        )
        await server.connect(transport)

        await server.send_resource_updated("file:///a")
        await server.send_resource_list_changed()
        await server.send_tool_list_changed()

        assert [m.method for m in transport.sent] == [
            "notifications/resources/updated",
            "notifications/resources/list_changed",
            "notifications/tools/list_changed",
        ]
        assert transport.sent[0].params == {"uri": "file:///a"}


class TestLogging:
    """Tests for logging/setLevel and log notifications."""

    @pytest.mark.asyncio
    async def test_set_level_filters_messages(self, transport, settle):
        server = make_server(logging=True)
        await server.connect(transport)
        await handshake(server, transport, settle)

        await transport.inject(
            JSONRPCRequest(id=1, method="logging/setLevel", params={"level": "warning"})
        )
        await settle()
        assert transport.sent == [JSONRPCResponse(id=1, result={})]
        assert server.logging_level == LoggingLevel.WARNING
        transport.clear()

        await server.send_logging_message({"level": "info", "data": "quiet"})
        await server.send_logging_message({"level": "error", "data": "loud"})

        assert len(transport.sent) == 1
        assert transport.sent[0].method == "notifications/message"
        assert transport.sent[0].params["data"] == "loud"

    @pytest.mark.asyncio
    async def test_invalid_level_is_invalid_params(self, transport, settle):
        server = make_server(logging=True)
        await server.connect(transport)
        await handshake(server, transport, settle)

        await transport.inject(
            JSONRPCRequest(id=1, method="logging/setLevel", params={"level": "loud"})
        )
        await settle()

        assert transport.sent[0].error.code == INVALID_PARAMS
        assert "Invalid log level" in transport.sent[0].error.message

    @pytest.mark.asyncio
    async def test_set_level_not_handled_without_logging(self, transport, settle):
        server = make_server()
        await server.connect(transport)
        await handshake(server, transport, settle)

        await transport.inject(
            JSONRPCRequest(id=1, method="logging/setLevel", params={"level": "debug"})
        )
        await settle()

        assert transport.sent[0].error.code == -32601

    @pytest.mark.asyncio
    async def test_log_message_requires_logging(self, transport):
        server = make_server()
        await server.connect(transport)

        with pytest.raises(CapabilityError):
            await server.send_logging_message({"level": "info", "data": "x"})


class TestLoggingLevel:
    """Tests for LoggingLevel."""

    def test_ordering(self):
        assert LoggingLevel.DEBUG < LoggingLevel.INFO
        assert LoggingLevel.ERROR <= LoggingLevel.ERROR
        assert not LoggingLevel.EMERGENCY < LoggingLevel.ALERT

    def test_from_string(self):
        assert LoggingLevel.from_string("NOTICE") == LoggingLevel.NOTICE
        with pytest.raises(ValueError, match="Invalid log level"):
            LoggingLevel.from_string(None)

    def test_to_python(self):
        assert LoggingLevel.NOTICE.to_python() == logging.INFO
        assert LoggingLevel.EMERGENCY.to_python() == logging.CRITICAL


class TestClose:
    """Tests for server teardown."""

    @pytest.mark.asyncio
    async def test_close_runs_callback(self, transport, settle):
        server = make_server()
        closed = []
        server.on_close_callback = lambda: closed.append(server.state)
        await server.connect(transport)
        await handshake(server, transport, settle)

        await server.close()

        assert closed == [SessionState.CLOSED]
        assert not server.is_connected
