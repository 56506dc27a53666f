"""Tests for the client session, end to end over an in-memory pair."""

import asyncio
import logging

import pytest

from mcpkit.capabilities.client import ClientCapabilities, RootsCapability, SamplingCapability
from mcpkit.capabilities.negotiation import Implementation, IncompatibleProtocolError
from mcpkit.capabilities.server import (
    ServerCapabilities,
    ServerPromptsCapability,
    ServerResourcesCapability,
    ServerToolsCapability,
)
from mcpkit.client import Client, ClientOptions
from mcpkit.protocol.errors import CONNECTION_CLOSED, CapabilityError, MCPError
from mcpkit.protocol.messages import JSONRPCRequest, JSONRPCResponse
from mcpkit.protocol.options import RequestOptions
from mcpkit.protocol.state import SessionState
from mcpkit.server import Server, ServerOptions
from mcpkit.transport.memory import create_connected_pair


def make_server(**capabilities) -> Server:
    return Server(
        Implementation("test-server", "0.1"),
        ServerOptions(capabilities=ServerCapabilities(**capabilities), instructions="hi"),
    )


def make_client(**options) -> Client:
    return Client(Implementation("test-client", "1.0"), ClientOptions(**options))


async def connect_pair(server: Server, client: Client):
    client_side, server_side = create_connected_pair()
    await server.connect(server_side)
    await client.connect(client_side)
    return client_side, server_side


class TestHandshake:
    """Tests for connect() and the initialize exchange."""

    @pytest.mark.asyncio
    async def test_connect_initializes_both_sides(self, settle):
        server = make_server(tools=ServerToolsCapability())
        client = make_client(capabilities=ClientCapabilities(sampling=SamplingCapability()))

        await connect_pair(server, client)
        await settle()

        assert client.is_initialized
        assert client.server_info == Implementation("test-server", "0.1")
        assert client.server_capabilities.tools is not None
        assert client.server_instructions == "hi"
        assert client.protocol_version == "2024-11-05"
        assert client.negotiation.client_capabilities.supports_sampling()

        assert server.is_initialized
        assert server.client_info == Implementation("test-client", "1.0")
        assert server.client_capabilities.supports_sampling()

        await client.close()

    @pytest.mark.asyncio
    async def test_state_changes_are_logged(self, caplog):
        server = make_server()
        client = make_client()

        with caplog.at_level(logging.DEBUG, logger="mcpkit.client.client"):
            await connect_pair(server, client)
            await client.close()

        assert "Client state INITIALIZING -> INITIALIZED" in caplog.text
        assert "Client state INITIALIZED -> CLOSED" in caplog.text

    @pytest.mark.asyncio
    async def test_incompatible_version_closes(self, transport, settle):
        client = make_client()
        connect = asyncio.create_task(client.connect(transport))
        await settle()

        init = transport.sent[0]
        assert init.method == "initialize"
        assert init.params["protocolVersion"] == "2024-11-05"
        assert init.params["clientInfo"] == {"name": "test-client", "version": "1.0"}

        await transport.inject(
            JSONRPCResponse(
                id=init.id,
                result={
                    "protocolVersion": "1999-01-01",
                    "capabilities": {},
                    "serverInfo": {"name": "old", "version": "0"},
                },
            )
        )

        with pytest.raises(IncompatibleProtocolError) as exc_info:
            await connect
        assert exc_info.value.server_version == "1999-01-01"
        assert transport.is_closed
        assert client.state == SessionState.CLOSED
        assert not client.is_connected

    @pytest.mark.asyncio
    async def test_initialize_timeout_closes(self, transport):
        client = make_client()

        with pytest.raises(MCPError):
            await client.connect(transport, timeout=0.05)
        assert transport.is_closed

    @pytest.mark.asyncio
    async def test_initialized_notification_sent_after_result(self, transport, settle):
        client = make_client()
        connect = asyncio.create_task(client.connect(transport))
        await settle()

        await transport.inject(
            JSONRPCResponse(
                id=0,
                result={
                    "protocolVersion": "2024-10-07",
                    "capabilities": {"logging": {}},
                    "serverInfo": {"name": "srv", "version": "1"},
                },
            )
        )
        await connect

        assert [m.method for m in transport.sent] == ["initialize", "notifications/initialized"]
        assert client.protocol_version == "2024-10-07"
        assert client.server_capabilities.logging


class TestRequests:
    """Tests for the request helpers against a live server."""

    @pytest.mark.asyncio
    async def test_call_tool(self):
        server = make_server(tools=ServerToolsCapability())

        async def call_tool(request, extra):
            args = request.params["arguments"]
            return {"content": [{"type": "text", "text": args.get("text", "")}]}

        server.set_request_handler("tools/call", call_tool)
        client = make_client()
        await connect_pair(server, client)

        result = await client.call_tool("echo", {"text": "hello"})
        assert result == {"content": [{"type": "text", "text": "hello"}]}

        await client.close()

    @pytest.mark.asyncio
    async def test_call_tool_with_progress(self):
        server = make_server(tools=ServerToolsCapability())

        async def call_tool(request, extra):
            for step in range(3):
                await extra.report_progress(step + 1, 3)
            return {"content": []}

        server.set_request_handler("tools/call", call_tool)
        client = make_client()
        await connect_pair(server, client)

        updates = []
        await client.call_tool("slow", options=RequestOptions(on_progress=updates.append))

        assert [u.progress for u in updates] == [1, 2, 3]
        assert updates[-1].is_complete

        await client.close()

    @pytest.mark.asyncio
    async def test_resource_and_prompt_helpers_send_expected_params(self, transport, settle):
        client = make_client()
        connect = asyncio.create_task(client.connect(transport))
        await settle()
        await transport.inject(
            JSONRPCResponse(
                id=0,
                result={
                    "protocolVersion": "2024-11-05",
                    "capabilities": {"resources": {}, "prompts": {}, "logging": {}},
                    "serverInfo": {"name": "srv", "version": "1"},
                },
            )
        )
        await connect
        transport.clear()

        calls = [
            client.list_resources(cursor="c1"),
            client.list_resource_templates(),
            client.read_resource("file:///a"),
            client.list_prompts(),
            client.get_prompt("greet", {"name": "x"}),
            client.complete({"type": "ref/prompt", "name": "greet"}, {"name": "n", "value": "a"}),
            client.set_logging_level("debug"),
            client.list_tools(),
        ]
        tasks = [asyncio.create_task(c) for c in calls]
        await settle()

        sent = [(m.method, m.params) for m in transport.sent]
        assert sent == [
            ("resources/list", {"cursor": "c1"}),
            ("resources/templates/list", None),
            ("resources/read", {"uri": "file:///a"}),
            ("prompts/list", None),
            ("prompts/get", {"name": "greet", "arguments": {"name": "x"}}),
            (
                "completion/complete",
                {"ref": {"type": "ref/prompt", "name": "greet"}, "argument": {"name": "n", "value": "a"}},
            ),
            ("logging/setLevel", {"level": "debug"}),
            ("tools/list", None),
        ]

        for msg in transport.sent:
            await transport.inject(JSONRPCResponse(id=msg.id, result={}))
        await asyncio.gather(*tasks)

    @pytest.mark.asyncio
    async def test_server_can_call_back_during_request(self):
        server = make_server(tools=ServerToolsCapability())

        async def call_tool(request, extra):
            sampled = await server.create_message({"messages": [], "maxTokens": 5})
            return {"content": [{"type": "text", "text": sampled["content"]["text"]}]}

        server.set_request_handler("tools/call", call_tool)

        client = make_client(capabilities=ClientCapabilities(sampling=SamplingCapability()))
        client.set_request_handler(
            "sampling/createMessage",
            lambda r, e: {"role": "assistant", "content": {"type": "text", "text": "sampled"}},
        )
        await connect_pair(server, client)

        result = await client.call_tool("ask")
        assert result["content"][0]["text"] == "sampled"

        await client.close()

    @pytest.mark.asyncio
    async def test_server_requests_roots_once_initialized(self):
        server = make_server()
        got = asyncio.get_running_loop().create_future()

        async def on_initialized():
            roots = await server.list_roots(options=RequestOptions(timeout=1.0))
            got.set_result(roots)

        server.on_initialized = on_initialized

        client = make_client(capabilities=ClientCapabilities(roots=RootsCapability()))
        client.set_request_handler(
            "roots/list", lambda r, e: {"roots": [{"uri": "file:///work", "name": "work"}]}
        )
        await connect_pair(server, client)

        roots = await asyncio.wait_for(got, timeout=2.0)
        assert roots == {"roots": [{"uri": "file:///work", "name": "work"}]}

        await client.close()

    @pytest.mark.asyncio
    async def test_ping_both_ways(self, settle):
        server = make_server()
        client = make_client()
        await connect_pair(server, client)
        await settle()

        assert await client.ping() == {}
        assert await server.ping() == {}

        await client.close()


class TestClientCapabilities:
    """Tests for client-side capability checks."""

    def test_sampling_handler_requires_capability(self):
        client = make_client()
        with pytest.raises(CapabilityError):
            client.set_request_handler("sampling/createMessage", lambda r, e: {})

    @pytest.mark.asyncio
    async def test_strict_client_checks_server_capabilities(self):
        server = make_server(resources=ServerResourcesCapability(subscribe=False))
        client = make_client(enforce_strict_capabilities=True)
        await connect_pair(server, client)

        with pytest.raises(CapabilityError) as exc_info:
            await client.subscribe_resource("file:///a")
        assert exc_info.value.capability == "resources.subscribe"

        with pytest.raises(CapabilityError):
            await client.list_tools()

        await client.close()

    @pytest.mark.asyncio
    async def test_subscribe_allowed_when_declared(self):
        server = make_server(resources=ServerResourcesCapability(subscribe=True))
        server.set_request_handler("resources/subscribe", lambda r, e: {})
        server.set_request_handler("resources/unsubscribe", lambda r, e: {})
        client = make_client(enforce_strict_capabilities=True)
        await connect_pair(server, client)

        assert await client.subscribe_resource("file:///a") == {}
        assert await client.unsubscribe_resource("file:///a") == {}

        await client.close()

    @pytest.mark.asyncio
    async def test_non_strict_client_sends_anyway(self):
        server = make_server(prompts=ServerPromptsCapability())
        client = make_client()
        await connect_pair(server, client)

        with pytest.raises(MCPError) as exc_info:
            await client.list_tools()
        assert exc_info.value.code == -32601

        await client.close()

    @pytest.mark.asyncio
    async def test_roots_list_changed_requires_roots(self):
        server = make_server()
        client = make_client()
        await connect_pair(server, client)

        with pytest.raises(CapabilityError):
            await client.send_roots_list_changed()

        await client.close()


class TestTeardown:
    """Tests for closing a connected pair."""

    @pytest.mark.asyncio
    async def test_close_rejects_pending_on_both_sides(self, settle):
        server = make_server(tools=ServerToolsCapability())
        started = asyncio.Event()

        async def call_tool(request, extra):
            started.set()
            await asyncio.sleep(10)

        server.set_request_handler("tools/call", call_tool)
        server_closed = []
        server.on_close_callback = lambda: server_closed.append(True)

        client = make_client()
        await connect_pair(server, client)

        pending = asyncio.create_task(client.call_tool("slow"))
        await started.wait()

        await client.close()
        await settle()

        with pytest.raises(MCPError) as exc_info:
            await pending
        assert exc_info.value.code == CONNECTION_CLOSED
        assert server_closed == [True]
        assert server.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_context_manager_closes(self):
        server = make_server()
        client = make_client()
        await connect_pair(server, client)

        async with client:
            await client.ping()

        assert not client.is_connected


class TestRawRequests:
    """Requests a client receives from a misbehaving server."""

    @pytest.mark.asyncio
    async def test_unhandled_server_request_gets_method_not_found(self, transport, settle):
        client = make_client()
        connect = asyncio.create_task(client.connect(transport))
        await settle()
        await transport.inject(
            JSONRPCResponse(
                id=0,
                result={
                    "protocolVersion": "2024-11-05",
                    "capabilities": {},
                    "serverInfo": {"name": "srv", "version": "1"},
                },
            )
        )
        await connect
        transport.clear()

        await transport.inject(JSONRPCRequest(id="s1", method="roots/list"))
        await settle()

        assert transport.sent[0].id == "s1"
        assert transport.sent[0].error.code == -32601
