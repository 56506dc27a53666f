"""mcpkit: Model Context Protocol sessions, transports and CLI."""

__version__ = "0.1.0"
