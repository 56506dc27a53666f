"""MCP Client."""

from mcpkit.client.client import Client, ClientOptions

__all__ = [
    "Client",
    "ClientOptions",
]
