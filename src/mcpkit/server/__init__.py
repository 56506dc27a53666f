"""
MCP Server.

The server-role session and ways to host it over stdio or SSE.
"""

from mcpkit.server.options import ServerOptions
from mcpkit.server.server import Server
from mcpkit.server.types import LoggingLevel

__all__ = [
    "LoggingLevel",
    "Server",
    "ServerOptions",
]
