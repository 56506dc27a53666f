"""Session and per-request options."""

from dataclasses import dataclass
from typing import Awaitable, Callable

# Default request timeout in seconds
DEFAULT_REQUEST_TIMEOUT = 60.0


@dataclass(frozen=True)
class Progress:
    """One progress update for an in-flight request."""

    progress: float
    total: float | None = None

    @property
    def is_complete(self) -> bool:
        return self.total is not None and self.progress >= self.total


ProgressCallback = Callable[[Progress], Awaitable[None] | None]


@dataclass
class ProtocolOptions:
    """Options shared by every protocol session."""

    enforce_strict_capabilities: bool = False
    """
    Check outgoing requests against the peer's declared capabilities, and
    escalate notification handler failures instead of only reporting them.
    """

    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    """Default timeout for outgoing requests in seconds."""

    def __post_init__(self) -> None:
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")


@dataclass
class RequestOptions:
    """Options for a single outgoing request."""

    on_progress: ProgressCallback | None = None
    """Called for each progress notification tied to this request."""

    timeout: float | None = None
    """Timeout in seconds; None uses the session default."""

    def __post_init__(self) -> None:
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")
