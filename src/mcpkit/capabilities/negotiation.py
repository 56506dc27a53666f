"""MCP protocol version negotiation and initialize payloads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from mcpkit.capabilities.client import ClientCapabilities
from mcpkit.capabilities.server import ServerCapabilities
from mcpkit.protocol.errors import MCPError

logger = logging.getLogger(__name__)

# Protocol version constants
LATEST_PROTOCOL_VERSION = "2024-11-05"
SUPPORTED_PROTOCOL_VERSIONS = [LATEST_PROTOCOL_VERSION, "2024-10-07"]


class IncompatibleProtocolError(Exception):
    """Server protocol version is not compatible with client."""

    def __init__(self, message: str, server_version: str | None = None):
        super().__init__(message)
        self.server_version = server_version


def negotiate_protocol_version(requested: Any) -> str:
    """
    Pick the protocol version a server answers with.

    The requested version is echoed when supported; anything else falls
    back to the latest supported version.
    """
    if isinstance(requested, str) and requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    logger.debug(
        f"Requested protocol version {requested!r} not supported, "
        f"answering with {LATEST_PROTOCOL_VERSION}"
    )
    return LATEST_PROTOCOL_VERSION


@dataclass
class Implementation:
    """Name and version of an MCP client or server."""

    name: str
    version: str

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Implementation":
        """Create from clientInfo/serverInfo."""
        data = data or {}
        if not isinstance(data, dict):
            raise MCPError.invalid_params("Implementation info must be an object")
        return cls(
            name=str(data.get("name", "unknown")),
            version=str(data.get("version", "unknown")),
        )

    def to_dict(self) -> dict[str, str]:
        """Convert to wire format."""
        return {"name": self.name, "version": self.version}

    def __str__(self) -> str:
        return f"{self.name}/{self.version}"


@dataclass
class InitializeResult:
    """Result of the initialize request, as sent by the server."""

    protocol_version: str
    capabilities: ServerCapabilities
    server_info: Implementation
    instructions: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "protocolVersion": self.protocol_version,
            "capabilities": self.capabilities.to_dict(),
            "serverInfo": self.server_info.to_dict(),
        }
        if self.instructions is not None:
            result["instructions"] = self.instructions
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InitializeResult":
        return cls(
            protocol_version=data.get("protocolVersion", ""),
            capabilities=ServerCapabilities.from_dict(data.get("capabilities")),
            server_info=Implementation.from_dict(data.get("serverInfo")),
            instructions=data.get("instructions"),
        )


@dataclass
class NegotiationResult:
    """
    Result of a completed initialize handshake, from the client's side.

    Contains all information exchanged during the handshake.
    """

    protocol_version: str
    """Negotiated protocol version."""

    server_info: Implementation
    """Information about the server."""

    server_capabilities: ServerCapabilities
    """Capabilities declared by the server."""

    client_capabilities: ClientCapabilities
    """Capabilities declared by the client."""

    instructions: str | None = None
    """Usage instructions the server sent, if any."""

    def __str__(self) -> str:
        features = self.server_capabilities.get_available_features()
        return (
            f"NegotiationResult(version={self.protocol_version}, "
            f"server={self.server_info}, "
            f"features={features})"
        )
