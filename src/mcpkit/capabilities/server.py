"""Server capability definitions for MCP negotiation."""

from dataclasses import dataclass
from typing import Any

from mcpkit.capabilities.client import capability_object


@dataclass
class ServerToolsCapability:
    """Server provides tools that can be called by the client."""

    list_changed: bool = False
    """Server will notify when tool list changes."""


@dataclass
class ServerResourcesCapability:
    """Server provides resources that can be read by the client."""

    subscribe: bool = False
    """Client can subscribe to resource changes."""

    list_changed: bool = False
    """Server will notify when resource list changes."""


@dataclass
class ServerPromptsCapability:
    """Server provides prompt templates."""

    list_changed: bool = False
    """Server will notify when prompt list changes."""


@dataclass
class ServerCapabilities:
    """
    Capabilities a server declares in its initialize result.

    Used both by servers to describe themselves and by clients to hold what
    the connected server answered.
    """

    tools: ServerToolsCapability | None = None
    """Server provides callable tools."""

    resources: ServerResourcesCapability | None = None
    """Server provides readable resources."""

    prompts: ServerPromptsCapability | None = None
    """Server provides prompt templates."""

    logging: bool = False
    """Server can send log messages to the client."""

    experimental: dict[str, Any] | None = None
    """Experimental capabilities (vendor-specific)."""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ServerCapabilities":
        """
        Parse from an initialize result.

        Args:
            data: The 'capabilities' object from the server response.

        Returns:
            ServerCapabilities instance.
        """
        data = capability_object(data, "capabilities")
        caps = cls()

        if "tools" in data:
            tools = capability_object(data["tools"], "tools")
            caps.tools = ServerToolsCapability(list_changed=tools.get("listChanged", False))

        if "resources" in data:
            resources = capability_object(data["resources"], "resources")
            caps.resources = ServerResourcesCapability(
                subscribe=resources.get("subscribe", False),
                list_changed=resources.get("listChanged", False),
            )

        if "prompts" in data:
            prompts = capability_object(data["prompts"], "prompts")
            caps.prompts = ServerPromptsCapability(list_changed=prompts.get("listChanged", False))

        if "logging" in data:
            capability_object(data["logging"], "logging")
            caps.logging = True

        if "experimental" in data:
            caps.experimental = capability_object(data["experimental"], "experimental")

        return caps

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to wire format.

        Returns:
            Dict suitable for JSON serialization.
        """
        caps: dict[str, Any] = {}

        if self.tools is not None:
            caps["tools"] = {"listChanged": self.tools.list_changed}

        if self.resources is not None:
            caps["resources"] = {
                "subscribe": self.resources.subscribe,
                "listChanged": self.resources.list_changed,
            }

        if self.prompts is not None:
            caps["prompts"] = {"listChanged": self.prompts.list_changed}

        if self.logging:
            caps["logging"] = {}

        if self.experimental is not None:
            caps["experimental"] = self.experimental

        return caps

    def has(self, name: str) -> bool:
        """
        Check whether a top-level capability is declared.

        Servers never declare sampling, so has("sampling") is always False.
        """
        if name == "tools":
            return self.tools is not None
        if name == "resources":
            return self.resources is not None
        if name == "prompts":
            return self.prompts is not None
        if name == "logging":
            return self.logging
        if name == "experimental":
            return self.experimental is not None
        return False

    def get_available_features(self) -> list[str]:
        """
        List features available with this server.

        Returns:
            List of feature names.
        """
        return [
            name
            for name in ("tools", "resources", "prompts", "logging")
            if self.has(name)
        ]
