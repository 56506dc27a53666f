"""JSON-RPC 2.0 message types for MCP protocol."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from mcpkit.protocol.errors import MessageParseError

JSONRPC_VERSION = "2.0"

RequestId = Union[str, int]


class Method(str, Enum):
    """
    Known MCP method and notification names.

    Handler tables are keyed by plain strings, so custom or experimental
    methods work without appearing here.
    """

    INITIALIZE = "initialize"
    PING = "ping"
    COMPLETION_COMPLETE = "completion/complete"
    LOGGING_SET_LEVEL = "logging/setLevel"
    PROMPTS_GET = "prompts/get"
    PROMPTS_LIST = "prompts/list"
    RESOURCES_LIST = "resources/list"
    RESOURCES_TEMPLATES_LIST = "resources/templates/list"
    RESOURCES_READ = "resources/read"
    RESOURCES_SUBSCRIBE = "resources/subscribe"
    RESOURCES_UNSUBSCRIBE = "resources/unsubscribe"
    TOOLS_CALL = "tools/call"
    TOOLS_LIST = "tools/list"
    SAMPLING_CREATE_MESSAGE = "sampling/createMessage"
    ROOTS_LIST = "roots/list"

    NOTIFICATIONS_INITIALIZED = "notifications/initialized"
    NOTIFICATIONS_CANCELLED = "notifications/cancelled"
    NOTIFICATIONS_PROGRESS = "notifications/progress"
    NOTIFICATIONS_MESSAGE = "notifications/message"
    NOTIFICATIONS_RESOURCES_UPDATED = "notifications/resources/updated"
    NOTIFICATIONS_RESOURCES_LIST_CHANGED = "notifications/resources/list_changed"
    NOTIFICATIONS_TOOLS_LIST_CHANGED = "notifications/tools/list_changed"
    NOTIFICATIONS_PROMPTS_LIST_CHANGED = "notifications/prompts/list_changed"
    NOTIFICATIONS_ROOTS_LIST_CHANGED = "notifications/roots/list_changed"

    def __str__(self) -> str:
        return self.value


def method_name(method: "Method | str") -> str:
    """
    Normalize a method to its wire string.

    Enum members hash by member name, so they must not be used directly as
    handler table keys.
    """
    if isinstance(method, Method):
        return method.value
    return method


@dataclass(frozen=True)
class JSONRPCRequest:
    """
    JSON-RPC 2.0 request message.

    Requests expect exactly one response or error from the recipient.
    """

    id: RequestId
    method: str
    params: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        msg: dict[str, Any] = {
            "jsonrpc": JSONRPC_VERSION,
            "id": self.id,
            "method": self.method,
        }
        if self.params is not None:
            msg["params"] = self.params
        return msg

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JSONRPCRequest":
        """Create from JSON dict."""
        return cls(id=data["id"], method=data["method"], params=data.get("params"))

    def __str__(self) -> str:
        return f"Request({self.method}, id={self.id})"


@dataclass(frozen=True)
class JSONRPCNotification:
    """
    JSON-RPC 2.0 notification message.

    Notifications do not expect a response (no id field).
    """

    method: str
    params: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        msg: dict[str, Any] = {
            "jsonrpc": JSONRPC_VERSION,
            "method": self.method,
        }
        if self.params is not None:
            msg["params"] = self.params
        return msg

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JSONRPCNotification":
        """Create from JSON dict."""
        return cls(method=data["method"], params=data.get("params"))

    def __str__(self) -> str:
        return f"Notification({self.method})"


@dataclass(frozen=True)
class JSONRPCResponse:
    """JSON-RPC 2.0 success response."""

    id: RequestId
    result: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": self.id,
            "result": {} if self.result is None else self.result,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JSONRPCResponse":
        """Create from JSON dict."""
        return cls(id=data["id"], result=data.get("result"))

    def __str__(self) -> str:
        return f"Response(id={self.id}, success)"


@dataclass(frozen=True)
class JSONRPCError:
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.data is not None:
            error["data"] = self.data
        return error

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JSONRPCError":
        """Create from JSON dict."""
        return cls(
            code=data.get("code", -32603),
            message=data.get("message", "Unknown error"),
            data=data.get("data"),
        )


@dataclass(frozen=True)
class JSONRPCErrorResponse:
    """
    JSON-RPC 2.0 error response.

    The id is None only when the peer could not read the id of the
    offending request (e.g. a parse error).
    """

    id: RequestId | None
    error: JSONRPCError

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": self.id,
            "error": self.error.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JSONRPCErrorResponse":
        """Create from JSON dict."""
        return cls(id=data.get("id"), error=JSONRPCError.from_dict(data["error"]))

    @classmethod
    def create(
        cls,
        id: RequestId | None,
        code: int,
        message: str,
        data: Any = None,
    ) -> "JSONRPCErrorResponse":
        """Create an error response."""
        return cls(id=id, error=JSONRPCError(code=code, message=message, data=data))

    def __str__(self) -> str:
        return f"Response(id={self.id}, error={self.error.code})"


JSONRPCMessage = Union[
    JSONRPCRequest,
    JSONRPCNotification,
    JSONRPCResponse,
    JSONRPCErrorResponse,
]


def _valid_id(value: Any) -> bool:
    # bool is an int subclass but never a valid id
    return isinstance(value, (str, int)) and not isinstance(value, bool)


def parse_message(data: Any) -> JSONRPCMessage:
    """
    Parse a JSON value into the appropriate message type.

    This is the single validation point for inbound envelopes; handlers
    never see a message that did not pass through here.

    Args:
        data: Decoded JSON value.

    Returns:
        The message variant matching the envelope's shape.

    Raises:
        MessageParseError: If the envelope is malformed.
    """
    if not isinstance(data, dict):
        raise MessageParseError.from_structure("Message must be a JSON object")

    raw_id = data.get("id")
    request_id = raw_id if _valid_id(raw_id) else None
    has_id = "id" in data
    has_method = "method" in data

    # Only a malformed request can be answered; never reply to a response
    reply_id = request_id if has_method else None

    if data.get("jsonrpc") != JSONRPC_VERSION:
        raise MessageParseError.from_structure("Invalid JSON-RPC version", reply_id)

    if has_id and raw_id is not None and request_id is None:
        raise MessageParseError.from_structure("id must be a string or integer")

    if has_method:
        if not isinstance(data["method"], str):
            raise MessageParseError.from_structure("method must be a string", reply_id)
        params = data.get("params")
        if params is not None and not isinstance(params, dict):
            raise MessageParseError.from_structure("params must be an object", reply_id)
        if has_id:
            if request_id is None:
                raise MessageParseError.from_structure("Request id must not be null")
            return JSONRPCRequest.from_dict(data)
        return JSONRPCNotification.from_dict(data)

    if "error" in data:
        error = data["error"]
        if (
            not isinstance(error, dict)
            or not isinstance(error.get("code"), int)
            or not isinstance(error.get("message"), str)
        ):
            raise MessageParseError.from_structure("Malformed error object")
        return JSONRPCErrorResponse.from_dict(data)

    if "result" in data:
        if request_id is None:
            raise MessageParseError.from_structure("Response id must not be null")
        return JSONRPCResponse.from_dict(data)

    raise MessageParseError.from_structure("Cannot determine message type")
