"""Drive MCP bridge: JSON-RPC dispatcher and SSE gateway."""

__version__ = "1.0.0"
