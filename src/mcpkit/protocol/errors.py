"""Protocol error types and error codes."""

from dataclasses import dataclass
from typing import Any

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Implementation-defined codes (-32000 to -32099)
REQUEST_TIMEOUT = -32000
REQUEST_CANCELLED = -32001
CONNECTION_CLOSED = -32002

# Error code to message mapping
ERROR_MESSAGES = {
    PARSE_ERROR: "Parse error",
    INVALID_REQUEST: "Invalid Request",
    METHOD_NOT_FOUND: "Method not found",
    INVALID_PARAMS: "Invalid params",
    INTERNAL_ERROR: "Internal error",
    REQUEST_TIMEOUT: "Request timeout",
    REQUEST_CANCELLED: "Request cancelled",
    CONNECTION_CLOSED: "Connection closed",
}


@dataclass
class MCPError(Exception):
    """
    MCP protocol error.

    Represents errors from the JSON-RPC layer or MCP protocol.
    Can be converted to/from JSON-RPC error objects.
    """

    code: int
    message: str
    data: Any = None

    def __post_init__(self):
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-RPC error object."""
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.data is not None:
            error["data"] = self.data
        return error

    @classmethod
    def from_dict(cls, error: dict[str, Any]) -> "MCPError":
        """Create from JSON-RPC error object."""
        return cls(
            code=error.get("code", INTERNAL_ERROR),
            message=error.get("message", "Unknown error"),
            data=error.get("data"),
        )

    @classmethod
    def method_not_found(cls, method: str) -> "MCPError":
        """Create a method not found error."""
        return cls(
            code=METHOD_NOT_FOUND,
            message=f"Method not found: {method}",
            data={"method": method},
        )

    @classmethod
    def invalid_request(cls, details: str | None = None) -> "MCPError":
        """Create an invalid request error."""
        return cls(
            code=INVALID_REQUEST,
            message=details or ERROR_MESSAGES[INVALID_REQUEST],
        )

    @classmethod
    def invalid_params(cls, details: str | None = None) -> "MCPError":
        """Create an invalid params error."""
        return cls(
            code=INVALID_PARAMS,
            message=details or ERROR_MESSAGES[INVALID_PARAMS],
        )

    @classmethod
    def internal_error(cls, details: str | None = None) -> "MCPError":
        """Create an internal error."""
        return cls(
            code=INTERNAL_ERROR,
            message=details or ERROR_MESSAGES[INTERNAL_ERROR],
        )

    @classmethod
    def timeout(cls, timeout_seconds: float) -> "MCPError":
        """Create a request timeout error."""
        return cls(
            code=REQUEST_TIMEOUT,
            message=f"Request timed out after {timeout_seconds}s",
            data={"timeout": timeout_seconds},
        )

    @classmethod
    def cancelled(cls, reason: str | None = None) -> "MCPError":
        """Create a request cancelled error."""
        return cls(
            code=REQUEST_CANCELLED,
            message=reason or ERROR_MESSAGES[REQUEST_CANCELLED],
        )

    @classmethod
    def connection_closed(cls) -> "MCPError":
        """Create the error delivered to pending requests on teardown."""
        return cls(code=CONNECTION_CLOSED, message=ERROR_MESSAGES[CONNECTION_CLOSED])

    @classmethod
    def not_connected(cls) -> "MCPError":
        return cls(code=INTERNAL_ERROR, message="Not connected")

    @classmethod
    def already_connected(cls) -> "MCPError":
        return cls(code=INTERNAL_ERROR, message="Already connected to a transport")

    def __str__(self) -> str:
        base = f"MCPError({self.code}): {self.message}"
        if self.data:
            base += f" {self.data}"
        return base

    def __repr__(self) -> str:
        return f"MCPError(code={self.code}, message={self.message!r}, data={self.data})"


@dataclass
class MessageParseError(MCPError):
    """
    A received message could not be deserialized.

    request_id is set when the payload was valid JSON carrying a usable id,
    which lets the receiver still answer with an error response.
    """

    request_id: str | int | None = None

    @classmethod
    def from_json_error(cls, details: str) -> "MessageParseError":
        return cls(
            code=PARSE_ERROR,
            message=ERROR_MESSAGES[PARSE_ERROR],
            data={"details": details},
        )

    @classmethod
    def from_structure(
        cls,
        details: str,
        request_id: str | int | None = None,
    ) -> "MessageParseError":
        return cls(
            code=INVALID_REQUEST,
            message=ERROR_MESSAGES[INVALID_REQUEST],
            data={"details": details},
            request_id=request_id,
        )


@dataclass
class CapabilityError(MCPError):
    """
    A method or notification requires a capability that was not declared.

    Raised synchronously at the call or registration site, before anything
    touches the wire.
    """

    method: str = ""
    capability: str = ""

    @classmethod
    def missing(cls, method: str, capability: str, side: str) -> "CapabilityError":
        """
        Create a capability-denied error.

        Args:
            method: The method or notification being checked.
            capability: The capability that is missing.
            side: Which side lacks it ("Client" or "Server").
        """
        return cls(
            code=INVALID_PARAMS,
            message=f"{side} does not support {capability} (required for {method})",
            data={"method": method, "capability": capability},
            method=method,
            capability=capability,
        )


@dataclass
class NotificationHandlerError(MCPError):
    """
    A notification handler failed while strict capabilities are enforced.

    Only the error hook receives it; pending requests are left alone.
    The handler's own exception is the __cause__.
    """

    method: str = ""

    @classmethod
    def wrap(cls, method: str, error: Exception) -> "NotificationHandlerError":
        wrapped = cls(
            code=INTERNAL_ERROR,
            message=f"Notification handler for {method} failed: {error}",
            data={"method": method},
            method=method,
        )
        wrapped.__cause__ = error
        return wrapped
