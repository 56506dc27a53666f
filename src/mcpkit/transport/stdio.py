"""Stdio transports: newline-delimited JSON over stdin/stdout."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Any

from mcpkit.protocol.errors import MessageParseError
from mcpkit.protocol.framing import ReadBuffer, serialize_message
from mcpkit.protocol.messages import JSONRPCMessage
from mcpkit.transport.base import ConnectionError, Transport, TransportError
from mcpkit.transport.types import TransportEventType

logger = logging.getLogger(__name__)

# Bytes requested from the stream per read
READ_CHUNK_SIZE = 64 * 1024

# Seconds to wait for a terminated subprocess before killing it
TERMINATE_TIMEOUT = 2.0


class _StreamTransport(Transport):
    """Shared reader loop over an asyncio.StreamReader."""

    def __init__(self) -> None:
        super().__init__()
        self._reader: asyncio.StreamReader | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._buffer = ReadBuffer()

    def _start_reader(self, reader: asyncio.StreamReader) -> None:
        self._reader = reader
        self._reader_task = asyncio.create_task(self._read_loop(), name="mcp-stdio-reader")

    async def _read_loop(self) -> None:
        assert self._reader is not None
        try:
            while True:
                chunk = await self._reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    logger.debug("EOF on input stream")
                    break

                self._buffer.append(chunk)
                while True:
                    try:
                        message = self._buffer.read_message()
                    except MessageParseError as e:
                        await self._deliver_error(e)
                        continue
                    if message is None:
                        break
                    await self._deliver_message(message)
        except (ConnectionResetError, BrokenPipeError) as e:
            await self._deliver_error(TransportError(f"Input stream failed: {e}", cause=e))
        finally:
            self._buffer.clear()

        await self._on_eof()

    async def _on_eof(self) -> None:
        await self.close()

    async def _stop_reader(self) -> None:
        task = self._reader_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._reader_task = None


class StdioServerTransport(_StreamTransport):
    """
    Server side of the stdio transport.

    Reads framed messages from stdin and writes them to stdout. Streams can
    be injected for embedding and tests; when omitted, the process's own
    stdin/stdout are attached to the event loop on start(). stdout carries
    nothing but protocol messages, so logs must go to stderr.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader | None = None,
        writer: Any | None = None,
    ):
        """
        Initialize the transport.

        Args:
            reader: Stream to read from (defaults to stdin).
            writer: Object with write() and optionally drain() (defaults
                to stdout).
        """
        super().__init__()
        self._input = reader
        self._output = writer

    async def start(self) -> None:
        self._mark_started()

        reader = self._input
        if reader is None:
            loop = asyncio.get_running_loop()
            reader = asyncio.StreamReader()
            protocol = asyncio.StreamReaderProtocol(reader)
            await loop.connect_read_pipe(lambda: protocol, sys.stdin)
        if self._output is None:
            self._output = sys.stdout.buffer

        self._start_reader(reader)
        logger.debug("Stdio server transport started")

    async def send(self, message: JSONRPCMessage) -> None:
        self._check_sendable()
        data = serialize_message(message)

        try:
            self._output.write(data)
            drain = getattr(self._output, "drain", None)
            if drain is not None:
                await drain()
            else:
                self._output.flush()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise TransportError(f"Output stream closed: {e}", cause=e) from e

        self._emit_event(TransportEventType.MESSAGE_SENT, data={"bytes": len(data)})

    async def close(self) -> None:
        if self._closed:
            return
        await self._stop_reader()
        self._buffer.clear()
        await self._deliver_close()


class StdioClientTransport(_StreamTransport):
    """
    Client side of the stdio transport.

    Spawns the server as a subprocess, writes framed messages to its stdin,
    reads them from its stdout and logs whatever it prints on stderr.
    """

    def __init__(
        self,
        command: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
    ):
        """
        Initialize the transport.

        Args:
            command: Executable to spawn.
            args: Arguments passed to the executable.
            env: Extra environment variables, merged over the current ones.
            cwd: Working directory for the subprocess.
        """
        if not command:
            raise ValueError("Command cannot be empty")

        super().__init__()
        self.command = command
        self.args = list(args or [])
        self.env = env or {}
        self.cwd = cwd

        self._process: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task[None] | None = None

    @property
    def process(self) -> asyncio.subprocess.Process | None:
        return self._process

    async def start(self) -> None:
        self._mark_started()

        try:
            logger.debug(f"Spawning MCP server: {self.command} {' '.join(self.args)}")
            self._process = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **self.env},
                cwd=self.cwd,
            )
        except FileNotFoundError as e:
            raise ConnectionError(f"MCP server command not found: {self.command}", cause=e) from e
        except OSError as e:
            raise ConnectionError(f"Failed to spawn MCP server: {e}", cause=e) from e

        self._stderr_task = asyncio.create_task(self._read_stderr(), name="mcp-stdio-stderr")
        self._start_reader(self._process.stdout)
        logger.info(f"Spawned MCP server pid={self._process.pid}")

    async def send(self, message: JSONRPCMessage) -> None:
        self._check_sendable()
        if self._process is None or self._process.stdin is None:
            raise ConnectionError("Subprocess not running")

        data = serialize_message(message)
        try:
            self._process.stdin.write(data)
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise ConnectionError("MCP server connection lost", cause=e) from e

        self._emit_event(TransportEventType.MESSAGE_SENT, data={"bytes": len(data)})

    async def close(self) -> None:
        if self._closed:
            return

        await self._stop_reader()

        if self._stderr_task is not None:
            self._stderr_task.cancel()
            try:
                await self._stderr_task
            except asyncio.CancelledError:
                pass
            self._stderr_task = None

        process = self._process
        if process is not None:
            try:
                if process.stdin is not None:
                    process.stdin.close()
                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=TERMINATE_TIMEOUT)
                except asyncio.TimeoutError:
                    process.kill()
                    await process.wait()
            except ProcessLookupError:
                pass
            logger.debug(f"MCP server exited with code {process.returncode}")

        await self._deliver_close()

    async def _read_stderr(self) -> None:
        """Log stderr lines from the subprocess."""
        if self._process is None or self._process.stderr is None:
            return

        while True:
            line = await self._process.stderr.readline()
            if not line:
                break
            logger.warning(f"MCP stderr: {line.decode('utf-8', errors='replace').rstrip()}")

    def __repr__(self) -> str:
        status = "running" if self._process and self._process.returncode is None else "stopped"
        return f"<StdioClientTransport({self.command}) [{status}]>"
