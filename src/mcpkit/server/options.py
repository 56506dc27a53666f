"""Configuration options for the MCP server."""

from dataclasses import dataclass, field

from mcpkit.capabilities.server import ServerCapabilities
from mcpkit.protocol.options import ProtocolOptions


@dataclass
class ServerOptions(ProtocolOptions):
    """Server session options."""

    enforce_strict_capabilities: bool = True
    """Servers check outgoing requests against the client's capabilities by default."""

    capabilities: ServerCapabilities = field(default_factory=ServerCapabilities)
    """Capabilities declared in the initialize result."""

    instructions: str | None = None
    """Optional usage hints returned to the client on initialize."""
