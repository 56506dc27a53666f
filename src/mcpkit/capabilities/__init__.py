"""
MCP Capability Negotiation.

Capability declarations for both roles, the policies that gate methods
on them, and protocol version negotiation.
"""

from mcpkit.capabilities.client import (
    ClientCapabilities,
    SamplingCapability,
    RootsCapability,
)
from mcpkit.capabilities.server import (
    ServerCapabilities,
    ServerToolsCapability,
    ServerResourcesCapability,
    ServerPromptsCapability,
)
from mcpkit.capabilities.negotiation import (
    Implementation,
    InitializeResult,
    NegotiationResult,
    IncompatibleProtocolError,
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    negotiate_protocol_version,
)
from mcpkit.capabilities.policy import (
    assert_client_notification_capability,
    assert_client_request_capability,
    assert_client_request_handler_capability,
    assert_server_notification_capability,
    assert_server_request_capability,
    assert_server_request_handler_capability,
)

__all__ = [
    # Client capabilities
    "ClientCapabilities",
    "SamplingCapability",
    "RootsCapability",
    # Server capabilities
    "ServerCapabilities",
    "ServerToolsCapability",
    "ServerResourcesCapability",
    "ServerPromptsCapability",
    # Negotiation
    "Implementation",
    "InitializeResult",
    "NegotiationResult",
    "IncompatibleProtocolError",
    "LATEST_PROTOCOL_VERSION",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "negotiate_protocol_version",
    # Policy
    "assert_client_notification_capability",
    "assert_client_request_capability",
    "assert_client_request_handler_capability",
    "assert_server_notification_capability",
    "assert_server_request_capability",
    "assert_server_request_handler_capability",
]
