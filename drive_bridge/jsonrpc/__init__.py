"""JSON-RPC 2.0 implementation for the MCP bridge."""
from .models import JSONRPCRequest, JSONRPCResponse, JSONRPCError, ErrorCode, error_envelope
from .handler import JSONRPCHandler

__all__ = [
    "JSONRPCRequest",
    "JSONRPCResponse",
    "JSONRPCError",
    "ErrorCode",
    "JSONRPCHandler",
    "error_envelope",
]
