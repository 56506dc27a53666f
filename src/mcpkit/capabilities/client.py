"""Client capability definitions for MCP negotiation."""

from dataclasses import dataclass
from typing import Any

from mcpkit.protocol.errors import MCPError


def capability_object(value: Any, name: str) -> dict[str, Any]:
    """
    Read one object from a capabilities declaration.

    A missing or null value reads as an empty object.

    Raises:
        MCPError: INVALID_PARAMS if the value is not an object.
    """
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MCPError.invalid_params(
            f"Capability '{name}' must be an object, got {type(value).__name__}"
        )
    return value


@dataclass
class SamplingCapability:
    """
    Client supports server-initiated LLM sampling.

    When declared, servers can send sampling/createMessage to the client.
    """

    pass


@dataclass
class RootsCapability:
    """
    Client can declare filesystem roots.

    Roots inform the server about filesystem boundaries the client
    is willing to operate within.
    """

    list_changed: bool = False
    """Whether client will notify server when roots change."""


@dataclass
class ClientCapabilities:
    """
    All client capabilities for MCP negotiation.

    Sent to the server in the initialize request; the server records them
    and checks its outgoing requests against them.
    """

    sampling: SamplingCapability | None = None
    """Server-initiated LLM sampling support."""

    roots: RootsCapability | None = None
    """Filesystem roots declaration support."""

    experimental: dict[str, Any] | None = None
    """Experimental capabilities (vendor-specific)."""

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to wire format for the initialize request.

        Returns:
            Dict suitable for JSON serialization.
        """
        caps: dict[str, Any] = {}

        if self.sampling is not None:
            caps["sampling"] = {}

        if self.roots is not None:
            caps["roots"] = {"listChanged": self.roots.list_changed}

        if self.experimental is not None:
            caps["experimental"] = self.experimental

        return caps

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ClientCapabilities":
        """
        Create from wire format.

        Args:
            data: The 'capabilities' object of an initialize request.

        Returns:
            ClientCapabilities instance.
        """
        data = capability_object(data, "capabilities")
        caps = cls()

        if "sampling" in data:
            capability_object(data["sampling"], "sampling")
            caps.sampling = SamplingCapability()

        if "roots" in data:
            roots = capability_object(data["roots"], "roots")
            caps.roots = RootsCapability(list_changed=bool(roots.get("listChanged", False)))

        if "experimental" in data:
            caps.experimental = capability_object(data["experimental"], "experimental")

        return caps

    def has(self, name: str) -> bool:
        """Check whether a top-level capability is declared."""
        if name == "sampling":
            return self.sampling is not None
        if name == "roots":
            return self.roots is not None
        if name == "experimental":
            return self.experimental is not None
        return False

    def supports_sampling(self) -> bool:
        """Check if sampling is supported."""
        return self.sampling is not None

    def supports_roots(self) -> bool:
        """Check if roots are supported."""
        return self.roots is not None
