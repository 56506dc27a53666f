"""
Capability assertion policies for the server and client roles.

Each function is pure: it looks the method up in a table and checks the
given capability record, raising CapabilityError when the required
capability is missing. Methods absent from a table are always allowed,
which keeps custom and experimental methods usable.
"""

from __future__ import annotations

from mcpkit.capabilities.client import ClientCapabilities
from mcpkit.capabilities.server import ServerCapabilities
from mcpkit.protocol.errors import CapabilityError
from mcpkit.protocol.messages import Method, method_name

# Outgoing server requests -> capability the client must have declared
SERVER_REQUEST_REQUIREMENTS: dict[str, str] = {
    Method.SAMPLING_CREATE_MESSAGE.value: "sampling",
    Method.ROOTS_LIST.value: "roots",
}

# Outgoing server notifications -> capability the server must have declared
SERVER_NOTIFICATION_REQUIREMENTS: dict[str, str] = {
    Method.NOTIFICATIONS_MESSAGE.value: "logging",
    Method.NOTIFICATIONS_RESOURCES_UPDATED.value: "resources",
    Method.NOTIFICATIONS_RESOURCES_LIST_CHANGED.value: "resources",
    Method.NOTIFICATIONS_TOOLS_LIST_CHANGED.value: "tools",
    Method.NOTIFICATIONS_PROMPTS_LIST_CHANGED.value: "prompts",
}

# Server request handlers -> capability the server must have declared
SERVER_HANDLER_REQUIREMENTS: dict[str, str] = {
    Method.SAMPLING_CREATE_MESSAGE.value: "sampling",
    Method.LOGGING_SET_LEVEL.value: "logging",
    Method.PROMPTS_GET.value: "prompts",
    Method.PROMPTS_LIST.value: "prompts",
    Method.COMPLETION_COMPLETE.value: "prompts",
    Method.RESOURCES_LIST.value: "resources",
    Method.RESOURCES_TEMPLATES_LIST.value: "resources",
    Method.RESOURCES_READ.value: "resources",
    Method.RESOURCES_SUBSCRIBE.value: "resources",
    Method.RESOURCES_UNSUBSCRIBE.value: "resources",
    Method.TOOLS_CALL.value: "tools",
    Method.TOOLS_LIST.value: "tools",
}

# Outgoing client requests -> capability the server must have declared
CLIENT_REQUEST_REQUIREMENTS: dict[str, str] = {
    Method.LOGGING_SET_LEVEL.value: "logging",
    Method.PROMPTS_GET.value: "prompts",
    Method.PROMPTS_LIST.value: "prompts",
    Method.COMPLETION_COMPLETE.value: "prompts",
    Method.RESOURCES_LIST.value: "resources",
    Method.RESOURCES_TEMPLATES_LIST.value: "resources",
    Method.RESOURCES_READ.value: "resources",
    Method.RESOURCES_SUBSCRIBE.value: "resources",
    Method.RESOURCES_UNSUBSCRIBE.value: "resources",
    Method.TOOLS_CALL.value: "tools",
    Method.TOOLS_LIST.value: "tools",
}

# Outgoing client notifications -> capability the client must have declared
CLIENT_NOTIFICATION_REQUIREMENTS: dict[str, str] = {
    Method.NOTIFICATIONS_ROOTS_LIST_CHANGED.value: "roots",
}

# Client request handlers -> capability the client must have declared
CLIENT_HANDLER_REQUIREMENTS: dict[str, str] = {
    Method.SAMPLING_CREATE_MESSAGE.value: "sampling",
    Method.ROOTS_LIST.value: "roots",
}


def _check(
    method: Method | str,
    table: dict[str, str],
    capabilities: ClientCapabilities | ServerCapabilities | None,
    side: str,
) -> None:
    name = method_name(method)
    required = table.get(name)
    if required is None:
        return
    if capabilities is None or not capabilities.has(required):
        raise CapabilityError.missing(name, required, side)


def assert_server_request_capability(
    method: Method | str,
    client_capabilities: ClientCapabilities | None,
) -> None:
    """
    Check a request the server is about to send.

    Args:
        method: The outgoing method.
        client_capabilities: What the client declared, or None before
            initialize was received.

    Raises:
        CapabilityError: If the client lacks the required capability.
    """
    _check(method, SERVER_REQUEST_REQUIREMENTS, client_capabilities, "Client")


def assert_server_notification_capability(
    method: Method | str,
    server_capabilities: ServerCapabilities,
) -> None:
    """Check a notification the server is about to send."""
    _check(method, SERVER_NOTIFICATION_REQUIREMENTS, server_capabilities, "Server")


def assert_server_request_handler_capability(
    method: Method | str,
    server_capabilities: ServerCapabilities,
) -> None:
    """Check a request handler the server is registering."""
    _check(method, SERVER_HANDLER_REQUIREMENTS, server_capabilities, "Server")


def assert_client_request_capability(
    method: Method | str,
    server_capabilities: ServerCapabilities | None,
) -> None:
    """
    Check a request the client is about to send.

    resources/subscribe additionally needs the server to have set the
    subscribe flag on its resources capability.

    Raises:
        CapabilityError: If the server lacks the required capability.
    """
    _check(method, CLIENT_REQUEST_REQUIREMENTS, server_capabilities, "Server")

    if method_name(method) == Method.RESOURCES_SUBSCRIBE.value:
        resources = server_capabilities.resources if server_capabilities else None
        if resources is None or not resources.subscribe:
            raise CapabilityError.missing(
                Method.RESOURCES_SUBSCRIBE.value, "resources.subscribe", "Server"
            )


def assert_client_notification_capability(
    method: Method | str,
    client_capabilities: ClientCapabilities,
) -> None:
    """Check a notification the client is about to send."""
    _check(method, CLIENT_NOTIFICATION_REQUIREMENTS, client_capabilities, "Client")


def assert_client_request_handler_capability(
    method: Method | str,
    client_capabilities: ClientCapabilities,
) -> None:
    """Check a request handler the client is registering."""
    _check(method, CLIENT_HANDLER_REQUIREMENTS, client_capabilities, "Client")
