"""
MCP Transport Layer.

Moves newline-delimited JSON-RPC messages between peers over stdio,
Server-Sent Events or an in-process pipe.
"""

from mcpkit.transport.base import (
    Transport,
    TransportError,
    ConnectionError,
    TimeoutError,
    SessionError,
)
from mcpkit.transport.types import (
    SSEClientConfig,
    TransportEvent,
    TransportEventType,
)
from mcpkit.transport.memory import InMemoryTransport, create_connected_pair
from mcpkit.transport.stdio import StdioClientTransport, StdioServerTransport
from mcpkit.transport.sse import SSEClientTransport, SSEServerTransport

__all__ = [
    # Base
    "Transport",
    "TransportError",
    "ConnectionError",
    "TimeoutError",
    "SessionError",
    # Types
    "SSEClientConfig",
    "TransportEvent",
    "TransportEventType",
    # Implementations
    "InMemoryTransport",
    "create_connected_pair",
    "StdioClientTransport",
    "StdioServerTransport",
    "SSEClientTransport",
    "SSEServerTransport",
]
