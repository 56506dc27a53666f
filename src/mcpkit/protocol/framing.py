"""Newline-delimited JSON framing for JSON-RPC messages."""

import orjson

from mcpkit.protocol.errors import MessageParseError
from mcpkit.protocol.messages import JSONRPCMessage, parse_message

DELIMITER = b"\n"


class ReadBuffer:
    """
    Accumulates raw bytes and splits them into JSON-RPC messages.

    One chunk may hold zero, one or several messages, so callers should
    drain with read_message() in a loop after every append().
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def append(self, chunk: bytes | str) -> None:
        """Append a chunk of received data."""
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self._buffer.extend(chunk)

    def read_message(self) -> JSONRPCMessage | None:
        """
        Extract the next complete message, if any.

        The line is removed from the buffer before it is decoded, so a
        malformed line raises once and never blocks the lines behind it.

        Returns:
            The next message, or None if no complete line is buffered.

        Raises:
            MessageParseError: If the extracted line is not a valid message.
        """
        while True:
            pos = self._buffer.find(DELIMITER)
            if pos == -1:
                return None

            line = bytes(self._buffer[:pos])
            del self._buffer[: pos + 1]

            line = line.rstrip(b"\r")
            if line.strip():
                return deserialize_message(line)

    def clear(self) -> None:
        """Discard all buffered data."""
        self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)


def deserialize_message(line: bytes | str) -> JSONRPCMessage:
    """Decode one JSON line into a message."""
    try:
        data = orjson.loads(line)
    except orjson.JSONDecodeError as e:
        raise MessageParseError.from_json_error(str(e)) from e
    return parse_message(data)


def serialize_message(message: JSONRPCMessage) -> bytes:
    """Encode a message as one compact JSON line."""
    # control characters are escaped, so the line never holds a raw newline
    return orjson.dumps(message.to_dict()) + DELIMITER
