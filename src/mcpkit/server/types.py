"""Shared types for the server role."""

from __future__ import annotations

import logging as python_logging
from enum import Enum


class LoggingLevel(Enum):
    """
    MCP log levels following RFC 5424 severity levels.

    Ordered from least to most severe.
    """

    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    ALERT = "alert"
    EMERGENCY = "emergency"

    @classmethod
    def from_string(cls, value: str) -> "LoggingLevel":
        """Parse log level from string value."""
        try:
            return cls(value.lower())
        except (ValueError, AttributeError):
            raise ValueError(f"Invalid log level: {value}")

    def __lt__(self, other: "LoggingLevel") -> bool:
        """Compare severity (lower = less severe)."""
        order = list(LoggingLevel)
        return order.index(self) < order.index(other)

    def __le__(self, other: "LoggingLevel") -> bool:
        return self == other or self < other

    def to_python(self) -> int:
        """Closest standard library logging level."""
        return PYTHON_LEVELS[self]


# Python has no NOTICE, ALERT or EMERGENCY
PYTHON_LEVELS: dict[LoggingLevel, int] = {
    LoggingLevel.DEBUG: python_logging.DEBUG,
    LoggingLevel.INFO: python_logging.INFO,
    LoggingLevel.NOTICE: python_logging.INFO,
    LoggingLevel.WARNING: python_logging.WARNING,
    LoggingLevel.ERROR: python_logging.ERROR,
    LoggingLevel.CRITICAL: python_logging.CRITICAL,
    LoggingLevel.ALERT: python_logging.CRITICAL,
    LoggingLevel.EMERGENCY: python_logging.CRITICAL,
}
