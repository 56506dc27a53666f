"""
MCP Protocol Core.

Implements JSON-RPC 2.0 message framing, request/response correlation,
and the session state machine.
"""

from mcpkit.protocol.messages import (
    JSONRPCRequest,
    JSONRPCResponse,
    JSONRPCNotification,
    JSONRPCError,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    Method,
    RequestId,
    method_name,
    parse_message,
)
from mcpkit.protocol.errors import (
    MCPError,
    MessageParseError,
    CapabilityError,
    NotificationHandlerError,
    PARSE_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    INVALID_PARAMS,
    INTERNAL_ERROR,
    REQUEST_TIMEOUT,
    REQUEST_CANCELLED,
    CONNECTION_CLOSED,
)
from mcpkit.protocol.framing import ReadBuffer, deserialize_message, serialize_message
from mcpkit.protocol.options import (
    DEFAULT_REQUEST_TIMEOUT,
    Progress,
    ProtocolOptions,
    RequestOptions,
)
from mcpkit.protocol.state import (
    SessionState,
    SessionStateMachine,
    InvalidStateTransition,
)
from mcpkit.protocol.session import ProtocolSession, RequestHandlerExtra

__all__ = [
    # Messages
    "JSONRPCRequest",
    "JSONRPCResponse",
    "JSONRPCNotification",
    "JSONRPCError",
    "JSONRPCErrorResponse",
    "JSONRPCMessage",
    "Method",
    "RequestId",
    "method_name",
    "parse_message",
    # Errors
    "MCPError",
    "MessageParseError",
    "CapabilityError",
    "NotificationHandlerError",
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "REQUEST_TIMEOUT",
    "REQUEST_CANCELLED",
    "CONNECTION_CLOSED",
    # Framing
    "ReadBuffer",
    "deserialize_message",
    "serialize_message",
    # Options
    "DEFAULT_REQUEST_TIMEOUT",
    "Progress",
    "ProtocolOptions",
    "RequestOptions",
    # State
    "SessionState",
    "SessionStateMachine",
    "InvalidStateTransition",
    # Session
    "ProtocolSession",
    "RequestHandlerExtra",
]
