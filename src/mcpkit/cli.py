"""
Command line entry point.

  mcpkit server [--port N] [--host H] [--config PATH]
      Serve MCP over stdio, or over SSE/HTTP when a port is given.

  mcpkit client <url-or-command> [args...]
      Connect to a server (http(s) URL -> SSE, anything else -> spawned
      stdio subprocess), run the handshake, list resources and exit.

Env:
  MCPKIT_LOG_LEVEL = DEBUG|INFO|WARNING|ERROR (default INFO)

Logs always go to stderr; stdout is the stdio wire.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from urllib.parse import urlparse

import orjson

from mcpkit import __version__
from mcpkit.capabilities.client import ClientCapabilities, SamplingCapability
from mcpkit.capabilities.negotiation import Implementation
from mcpkit.client.client import Client, ClientOptions
from mcpkit.config import ConfigError, ServerConfig, load_server_config
from mcpkit.server.server import Server
from mcpkit.transport.base import Transport
from mcpkit.transport.sse import SSEClientTransport
from mcpkit.transport.stdio import StdioClientTransport, StdioServerTransport
from mcpkit.transport.types import SSEClientConfig

logger = logging.getLogger("mcpkit")

LOG_LEVEL_ENV = "MCPKIT_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class UsageError(Exception):
    """Bad command line input."""


def configure_logging() -> str:
    """Send logs to stderr at the level named by MCPKIT_LOG_LEVEL."""
    level = os.getenv(LOG_LEVEL_ENV, "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    return level


class ArgumentParser(argparse.ArgumentParser):
    """Exits with status 1 on usage errors."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    p = ArgumentParser(prog="mcpkit", description="Model Context Protocol server and client.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="command", required=True)

    server = sub.add_parser("server", help="Run an MCP server (stdio unless --port is given).")
    server.add_argument("--port", type=int, default=None, help="Serve SSE over HTTP on this port.")
    server.add_argument("--host", default="127.0.0.1", help="HTTP host (with --port).")
    server.add_argument("--config", type=Path, default=None, help="Server config JSON file.")

    client = sub.add_parser("client", help="Connect to an MCP server and list its resources.")
    client.add_argument("target", help="http(s) URL of an SSE server, or a command to spawn.")
    client.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the spawned command.")
    client.add_argument("--timeout", type=float, default=30.0, help="Request timeout in seconds.")

    return p


def select_client_transport(target: str, args: list[str]) -> Transport:
    """
    Pick the transport for a client target.

    Raises:
        UsageError: For WebSocket URLs, which are not supported.
    """
    scheme = urlparse(target).scheme.lower()
    if scheme in ("http", "https"):
        try:
            return SSEClientTransport(SSEClientConfig(url=target))
        except ValueError as e:
            raise UsageError(str(e)) from e
    if scheme in ("ws", "wss"):
        raise UsageError("WebSocket transport is not supported; use an http(s) SSE URL or a command")
    return StdioClientTransport(target, args)


def make_server_factory(config: ServerConfig):
    def factory() -> Server:
        server = Server(config.server_info(), config.server_options())
        server.on_initialized = lambda: logger.info(f"Client {server.client_info} initialized")
        return server

    return factory


async def serve_stdio(config: ServerConfig) -> None:
    server = make_server_factory(config)()
    closed = asyncio.Event()
    server.on_close_callback = closed.set

    await server.connect(StdioServerTransport())
    logger.info(f"Serving {server.server_info} on stdio")
    await closed.wait()


def serve_http(config: ServerConfig, host: str, port: int, log_level: str) -> None:
    import uvicorn

    from mcpkit.server.http import create_sse_app

    app = create_sse_app(make_server_factory(config), title=config.name)
    logger.info(f"Server running on http://{host}:{port}/sse")
    uvicorn.run(app, host=host, port=port, log_level=log_level.lower())


async def run_client(target: str, args: list[str], timeout: float) -> int:
    transport = select_client_transport(target, args)
    client = Client(
        Implementation("mcpkit test client", __version__),
        ClientOptions(
            capabilities=ClientCapabilities(sampling=SamplingCapability()),
            request_timeout=timeout,
        ),
    )

    await client.connect(transport)
    try:
        logger.info(f"Initialized with {client.server_info}")
        capabilities = client.server_capabilities
        if capabilities is not None and capabilities.resources is not None:
            result = await client.list_resources()
        else:
            result = await client.ping()
        print(orjson.dumps(result, option=orjson.OPT_INDENT_2).decode())
    finally:
        await client.close()
        logger.info("Closed")
    return 0


def main(argv: list[str] | None = None) -> int:
    log_level = configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "server":
            config = load_server_config(args.config, working_dir=Path.cwd())
            if args.port is None:
                asyncio.run(serve_stdio(config))
            else:
                serve_http(config, args.host, args.port, log_level)
            return 0

        return asyncio.run(run_client(args.target, args.args, args.timeout))

    except (UsageError, ConfigError) as e:
        print(f"mcpkit: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        print(f"mcpkit: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
