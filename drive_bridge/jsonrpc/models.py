"""JSON-RPC 2.0 request/response models."""
from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr
from typing import Any, Dict, Optional, Union, Literal


class JSONRPCRequest(BaseModel):
    """JSON-RPC 2.0 request model."""

    model_config = ConfigDict(strict=True)

    jsonrpc: Literal["2.0"]
    method: StrictStr
    params: Optional[dict] = None
    id: Optional[Union[StrictStr, StrictInt]] = None


class JSONRPCError(BaseModel):
    """JSON-RPC 2.0 error model."""

    code: int
    message: str
    data: Optional[Any] = None


class JSONRPCResponse(BaseModel):
    """JSON-RPC 2.0 response model."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: Optional[Union[str, int]] = None
    result: Optional[Any] = None
    error: Optional[JSONRPCError] = None

    def envelope(self) -> Dict[str, Any]:
        """Wire form: ``id`` always present, exactly one of result/error."""
        data: Dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            data["error"] = self.error.model_dump(exclude_none=True)
        else:
            data["result"] = self.result
        return data


def error_envelope(code: int, message: str, id: Optional[Union[str, int]] = None,
                   data: Any = None) -> Dict[str, Any]:
    """Build a JSON-RPC error body, e.g. for transport-level failures."""
    return JSONRPCResponse(
        id=id, error=JSONRPCError(code=code, message=message, data=data)
    ).envelope()


class ErrorCode:
    """JSON-RPC 2.0 standard error codes and custom application codes."""

    # Standard JSON-RPC 2.0 error codes
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Custom application error codes
    SERVER_ERROR = -32000
    UNAUTHORIZED = -32001
    CONFIGURATION_ERROR = -32002
    UPSTREAM_UNAVAILABLE = -32098
