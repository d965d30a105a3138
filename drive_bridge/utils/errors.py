"""Custom exception classes for the Drive bridge."""
from typing import Optional


class BridgeError(Exception):
    """Base exception for bridge-related errors."""

    pass


class InvalidRequestError(BridgeError):
    """Malformed JSON-RPC envelope."""

    pass


class MethodNotFoundError(BridgeError):
    """JSON-RPC method is not registered."""

    pass


class UnknownToolError(MethodNotFoundError):
    """tools/call named a tool that is not registered."""

    pass


class InvalidArgumentsError(BridgeError):
    """Missing or malformed tool arguments."""

    pass


class BackendError(BridgeError):
    """The Drive backend replied with a failure envelope or a non-JSON body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackendUnreachableError(BridgeError):
    """Network or transport failure reaching the backend or upstream."""

    pass


class UnauthorizedError(BridgeError):
    """Presented token does not match the configured secret."""

    pass


class ConfigurationError(BridgeError):
    """A required setting (secret, backend address) is not configured."""

    pass
