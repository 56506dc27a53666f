"""Server configuration loading."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import orjson

from mcpkit import __version__
from mcpkit.capabilities.negotiation import Implementation
from mcpkit.capabilities.server import ServerCapabilities
from mcpkit.protocol.errors import MCPError
from mcpkit.server.options import ServerOptions

logger = logging.getLogger(__name__)

# Config file locations
SERVER_CONFIG_FILENAME = "server.json"
GLOBAL_CONFIG_DIR = Path.home() / ".mcpkit"
LOCAL_CONFIG_DIR = ".mcpkit"


class ConfigError(Exception):
    """A configuration file could not be used."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


@dataclass
class ServerConfig:
    """What the CLI server announces about itself."""

    name: str = "mcpkit test server"
    version: str = __version__
    instructions: str | None = None
    capabilities: dict[str, Any] = field(default_factory=dict)
    """Capabilities in wire format, e.g. {"tools": {}, "logging": {}}."""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServerConfig":
        """Create from config dict."""
        defaults = cls()
        capabilities = data.get("capabilities", {})
        try:
            ServerCapabilities.from_dict(capabilities)
        except MCPError as e:
            raise ConfigError(e.message) from e
        return cls(
            name=str(data.get("name", defaults.name)),
            version=str(data.get("version", defaults.version)),
            instructions=data.get("instructions"),
            capabilities=capabilities,
        )

    def merged(self, data: dict[str, Any]) -> "ServerConfig":
        """Return a copy with the keys present in data overriding this config."""
        return ServerConfig.from_dict(
            {
                "name": self.name,
                "version": self.version,
                "instructions": self.instructions,
                "capabilities": self.capabilities,
                **data,
            }
        )

    def server_info(self) -> Implementation:
        return Implementation(name=self.name, version=self.version)

    def server_options(self) -> ServerOptions:
        return ServerOptions(
            capabilities=ServerCapabilities.from_dict(self.capabilities),
            instructions=self.instructions,
        )


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        data = orjson.loads(path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}", path) from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object", path)
    return data


def load_server_config(
    path: Path | None = None,
    working_dir: Path | None = None,
) -> ServerConfig:
    """Load the server config.

    An explicit path is read on its own and must exist. Otherwise the
    global config (~/.mcpkit/server.json) is loaded first and the local
    config ({working_dir}/.mcpkit/server.json) overrides it key by key.
    Unreadable implicit files are skipped with a warning.

    Raises:
        ConfigError: If the explicit path cannot be read or is invalid.
    """
    if path is not None:
        return ServerConfig.from_dict(_read_config_file(path))

    config = ServerConfig()
    candidates = [GLOBAL_CONFIG_DIR / SERVER_CONFIG_FILENAME]
    if working_dir is not None:
        candidates.append(working_dir / LOCAL_CONFIG_DIR / SERVER_CONFIG_FILENAME)

    for candidate in candidates:
        if not candidate.exists():
            continue
        try:
            config = config.merged(_read_config_file(candidate))
            logger.debug(f"Loaded server config from {candidate}")
        except ConfigError as e:
            logger.warning(f"Ignoring config file: {e}")

    return config
