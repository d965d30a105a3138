"""JSON-RPC 2.0 request handler."""
from typing import Any, Awaitable, Callable, Dict, Optional, Union
import json
import logging

from pydantic import ValidationError

from .models import (
    JSONRPCRequest,
    JSONRPCResponse,
    JSONRPCError,
    ErrorCode
)
from ..utils.errors import BridgeError, InvalidArgumentsError, MethodNotFoundError

logger = logging.getLogger(__name__)

MethodHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


def recover_id(payload: Any) -> Optional[Union[str, int]]:
    """Best-effort request id from an envelope that failed validation."""
    if not isinstance(payload, dict):
        return None
    request_id = payload.get("id")
    if isinstance(request_id, bool):
        return None
    if isinstance(request_id, (str, int)):
        return request_id
    return None


class JSONRPCHandler:
    """Handles JSON-RPC 2.0 requests and routes to registered methods."""

    def __init__(self):
        self.methods: Dict[str, MethodHandler] = {}

    def register_method(self, method_name: str, handler: MethodHandler):
        """Register a JSON-RPC method handler.

        Args:
            method_name: Name of the JSON-RPC method (e.g., "tools/list")
            handler: Async callable that handles the method
        """
        self.methods[method_name] = handler
        logger.info(f"Registered JSON-RPC method: {method_name}")

    async def handle_raw(self, body: bytes) -> JSONRPCResponse:
        """Parse a raw HTTP body and handle it.

        Anything that is not a single well-formed JSON-RPC 2.0 request object
        yields INVALID_REQUEST, echoing the id when it can be recovered.
        """
        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            return JSONRPCResponse(
                id=None,
                error=JSONRPCError(
                    code=ErrorCode.INVALID_REQUEST,
                    message="Invalid Request: body is not valid JSON"
                )
            )

        try:
            request = JSONRPCRequest.model_validate(payload)
        except ValidationError as e:
            return JSONRPCResponse(
                id=recover_id(payload),
                error=JSONRPCError(
                    code=ErrorCode.INVALID_REQUEST,
                    message="Invalid Request",
                    data={"details": e.errors(include_url=False, include_context=False, include_input=False)}
                )
            )

        return await self.handle_request(request)

    async def handle_request(
        self,
        request: JSONRPCRequest
    ) -> JSONRPCResponse:
        """Handle a JSON-RPC 2.0 request.

        Args:
            request: JSONRPCRequest object

        Returns:
            JSONRPCResponse with result or error
        """
        try:
            # Validate method exists
            if request.method not in self.methods:
                return JSONRPCResponse(
                    id=request.id,
                    error=JSONRPCError(
                        code=ErrorCode.METHOD_NOT_FOUND,
                        message=f"Method not found: {request.method}"
                    )
                )

            # Execute method
            handler = self.methods[request.method]
            result = await handler(request.params or {})

            # Return success response
            return JSONRPCResponse(
                id=request.id,
                result=result
            )

        except InvalidArgumentsError as e:
            return JSONRPCResponse(
                id=request.id,
                error=JSONRPCError(
                    code=ErrorCode.INVALID_PARAMS,
                    message=str(e)
                )
            )
        except MethodNotFoundError as e:
            return JSONRPCResponse(
                id=request.id,
                error=JSONRPCError(
                    code=ErrorCode.METHOD_NOT_FOUND,
                    message=str(e)
                )
            )
        except BridgeError as e:
            # Backend error, backend unreachable, misconfiguration
            logger.warning(f"{request.method} failed: {e}")
            return JSONRPCResponse(
                id=request.id,
                error=JSONRPCError(
                    code=ErrorCode.SERVER_ERROR,
                    message=str(e),
                    data={"details": type(e).__name__}
                )
            )
        except Exception as e:
            logger.error(f"Internal error handling {request.method}: {e}", exc_info=True)
            return JSONRPCResponse(
                id=request.id,
                error=JSONRPCError(
                    code=ErrorCode.SERVER_ERROR,
                    message="Internal error",
                    data={"details": str(e)}
                )
            )
