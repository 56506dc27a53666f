"""Tests for protocol error types."""

from mcpkit.protocol.errors import (
    CONNECTION_CLOSED,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    REQUEST_CANCELLED,
    REQUEST_TIMEOUT,
    CapabilityError,
    MCPError,
    MessageParseError,
)


class TestMCPError:
    """Tests for MCPError."""

    def test_is_exception_with_message(self):
        error = MCPError(code=INTERNAL_ERROR, message="boom")
        assert isinstance(error, Exception)
        assert error.args == ("boom",)

    def test_to_dict_omits_missing_data(self):
        assert MCPError(code=-1, message="m").to_dict() == {"code": -1, "message": "m"}

    def test_from_dict_defaults(self):
        error = MCPError.from_dict({})
        assert error.code == INTERNAL_ERROR
        assert error.message == "Unknown error"

    def test_factories(self):
        assert MCPError.method_not_found("x").code == METHOD_NOT_FOUND
        assert MCPError.method_not_found("x").data == {"method": "x"}
        assert MCPError.invalid_params().message == "Invalid params"
        assert MCPError.timeout(1.5).code == REQUEST_TIMEOUT
        assert MCPError.cancelled().code == REQUEST_CANCELLED
        assert MCPError.connection_closed().code == CONNECTION_CLOSED
        assert MCPError.connection_closed().message == "Connection closed"

    def test_str_includes_code(self):
        assert str(MCPError(code=-32600, message="bad")) == "MCPError(-32600): bad"


class TestMessageParseError:
    """Tests for MessageParseError."""

    def test_json_error_has_no_request_id(self):
        error = MessageParseError.from_json_error("Expecting value")
        assert error.code == PARSE_ERROR
        assert error.request_id is None
        assert error.data == {"details": "Expecting value"}

    def test_structure_error_keeps_request_id(self):
        error = MessageParseError.from_structure("bad params", request_id="r1")
        assert error.request_id == "r1"
        assert isinstance(error, MCPError)


class TestCapabilityError:
    """Tests for CapabilityError."""

    def test_missing(self):
        error = CapabilityError.missing("sampling/createMessage", "sampling", "Client")
        assert error.code == INVALID_PARAMS
        assert error.method == "sampling/createMessage"
        assert error.capability == "sampling"
        assert "Client does not support sampling" in error.message
