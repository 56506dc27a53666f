"""Transport layer types and configuration."""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any
from urllib.parse import urlparse


class TransportEventType(Enum):
    """Types of transport events for observability."""

    STARTED = auto()
    CLOSED = auto()
    MESSAGE_SENT = auto()
    MESSAGE_RECEIVED = auto()
    ERROR = auto()
    SESSION_ESTABLISHED = auto()
    SSE_OPENED = auto()
    SSE_CLOSED = auto()


@dataclass
class TransportEvent:
    """Event emitted by transport for observability."""

    type: TransportEventType
    timestamp: float
    data: dict[str, Any] | None = None
    error: Exception | None = None

    def __str__(self) -> str:
        base = f"[{self.type.name}]"
        if self.data:
            base += f" {self.data}"
        if self.error:
            base += f" error={self.error}"
        return base


@dataclass
class SSEClientConfig:
    """Configuration for the SSE client transport."""

    url: str
    """URL of the server's SSE endpoint (must be https:// for remote servers)."""

    timeout: float = 30.0
    """Timeout for POSTed messages in seconds."""

    connect_timeout: float = 10.0
    """Time allowed for the stream to open and announce its endpoint."""

    headers: dict[str, str] = field(default_factory=dict)
    """Additional HTTP headers to include in requests."""

    verify_ssl: bool = True
    """Whether to verify SSL certificates."""

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.url:
            raise ValueError("url is required")
        # Allow http:// only for localhost development
        if self.url.startswith("http://") and not self._is_localhost():
            raise ValueError("Remote connections must use https://")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")

    def _is_localhost(self) -> bool:
        """Check if URL points to localhost."""
        host = urlparse(self.url).hostname or ""
        return host in ("localhost", "127.0.0.1", "::1", "[::1]")
