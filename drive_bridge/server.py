"""FastAPI Dispatcher: JSON-RPC over HTTP with an SSE endpoint handshake."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from . import __version__
from .config import Settings
from .drive.client import DriveClient
from .drive.operations import DriveOperations
from .jsonrpc.handler import JSONRPCHandler
from .mcp_handler import MCPHandler, dump_content
from .mcp_transport import MCPTransport
from .utils.errors import (
    BridgeError,
    ConfigurationError,
    InvalidArgumentsError,
    UnauthorizedError,
)
from .utils.security import auth_failure, check_token, extract_token
from .utils.validation import DEFAULT_SEARCH_LIMIT, MAX_SEARCH_LIMIT

logger = logging.getLogger(__name__)

SERVICE_NAME = "drive-bridge"


def register_all_tools(mcp_handler: MCPHandler, drive_ops: DriveOperations):
    """Register all MCP tools."""

    # Tool 1: search
    mcp_handler.register_tool(
        name="search",
        description="Search Drive files by text query and return matching file records",
        input_schema={
            "type": "object",
            "properties": {
                "q": {"type": "string", "description": "Search query (empty lists recent files)"},
                "max": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": MAX_SEARCH_LIMIT,
                    "description": f"Maximum results to return (default {DEFAULT_SEARCH_LIMIT})",
                },
            },
            "required": [],
        },
        handler=drive_ops.search,
        aliases=("drive_search",),
    )

    # Tool 2: fetch
    mcp_handler.register_tool(
        name="fetch",
        description="Fetch the content of a Drive file by id, optionally limited to a line range",
        input_schema={
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Drive file id"},
                "lines": {
                    "type": ["integer", "string"],
                    "description": "Line count or range such as '10-40' (optional)",
                },
            },
            "required": ["id"],
        },
        handler=drive_ops.fetch,
        aliases=("drive_fetch",),
    )


def register_jsonrpc_methods(
    jsonrpc_handler: JSONRPCHandler, mcp_handler: MCPHandler, settings: Settings
):
    """Register all JSON-RPC 2.0 methods."""

    # Method: initialize
    async def initialize(params: dict):
        return {
            "protocolVersion": settings.protocol_version,
            "capabilities": {"tools": {}},
            "serverInfo": {
                "name": SERVICE_NAME,
                "version": __version__
            }
        }

    # Method: ping
    async def ping(params: dict):
        return {}

    # Method: tools/list
    async def tools_list(params: dict):
        return {"tools": mcp_handler.list_tools()}

    # Method: tools/call
    async def tools_call(params: dict):
        name = params.get("name")
        arguments = params.get("arguments")

        if not name or not isinstance(name, str):
            raise InvalidArgumentsError("Tool name is required")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidArgumentsError("Tool arguments must be an object")

        blocks = await mcp_handler.execute_tool(name, arguments)
        return {"content": dump_content(blocks)}

    jsonrpc_handler.register_method("initialize", initialize)
    jsonrpc_handler.register_method("ping", ping)
    jsonrpc_handler.register_method("tools/list", tools_list)
    jsonrpc_handler.register_method("tools/call", tools_call)


def create_app(
    settings: Optional[Settings] = None,
    backend_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the Dispatcher app.

    Args:
        settings: Process settings; read from the environment when omitted
        backend_transport: Optional httpx transport for the Drive backend
    """
    settings = settings or Settings.from_env()

    drive_client = DriveClient(
        settings.backend_base_url,
        settings.backend_key,
        timeout=settings.backend_timeout,
        transport=backend_transport,
    )
    drive_ops = DriveOperations(drive_client)
    mcp_handler = MCPHandler()
    jsonrpc_handler = JSONRPCHandler()
    mcp_transport = MCPTransport(settings)

    register_all_tools(mcp_handler, drive_ops)
    register_jsonrpc_methods(jsonrpc_handler, mcp_handler, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle manager for FastAPI app."""
        logger.info("Starting Drive bridge dispatcher...")
        logger.info(f"Registered {len(mcp_handler.tools)} MCP tools")
        logger.info(f"Registered {len(jsonrpc_handler.methods)} JSON-RPC methods")
        if not settings.bridge_token:
            logger.warning("BRIDGE_TOKEN is not set; all authenticated requests will be refused")
        yield
        logger.info("Shutting down Drive bridge dispatcher...")
        await drive_client.close()

    app = FastAPI(
        title="Drive Bridge",
        description="MCP bridge exposing Drive search and fetch tools over JSON-RPC",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.mcp_handler = mcp_handler
    app.state.jsonrpc_handler = jsonrpc_handler

    async def require_token(request: Request) -> str:
        token = extract_token(request.headers, request.query_params)
        check_token(token, settings.bridge_token)
        return token

    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(request: Request, exc: UnauthorizedError):
        logger.info(f"Rejected {request.method} {request.url.path}: bad token")
        status_code, body = auth_failure(exc)
        return JSONResponse(body, status_code=status_code)

    @app.exception_handler(ConfigurationError)
    async def configuration_handler(request: Request, exc: ConfigurationError):
        logger.error(f"Refused {request.method} {request.url.path}: {exc}")
        status_code, body = auth_failure(exc)
        return JSONResponse(body, status_code=status_code)

    # MCP endpoint: HEAD probe, SSE handshake, JSON-RPC
    @app.head(settings.messages_path)
    async def mcp_head_endpoint():
        """Unauthenticated reachability probe."""
        return Response(status_code=200, headers={"Cache-Control": "no-store"})

    @app.get(settings.messages_path)
    async def mcp_get_endpoint(request: Request, token: str = Depends(require_token)):
        """Open the SSE stream advertising the messages URL."""
        return await mcp_transport.handle_get_request(request, token)

    @app.post(settings.messages_path)
    async def mcp_post_endpoint(request: Request, token: str = Depends(require_token)):
        """JSON-RPC 2.0 endpoint; JSON-RPC errors still return HTTP 200."""
        response = await jsonrpc_handler.handle_raw(await request.body())
        return JSONResponse(response.envelope(), headers={"Cache-Control": "no-store"})

    # REST probes (curl / smoke tests)
    @app.get("/search")
    async def search_probe(
        q: str = "",
        max_results: Optional[str] = Query(None, alias="max"),
        token: str = Depends(require_token),
    ):
        """Run a backend search directly."""
        try:
            blocks = await drive_ops.search({"q": q, "max": max_results})
        except InvalidArgumentsError as e:
            return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
        except BridgeError as e:
            return JSONResponse({"ok": False, "error": str(e)}, status_code=424)
        return {"ok": True, "data": blocks[0].json_}

    @app.get("/fetch")
    async def fetch_probe(
        file_id: Optional[str] = Query(None, alias="id"),
        lines: Optional[str] = None,
        token: str = Depends(require_token),
    ):
        """Fetch a file directly, returning the raw normalized payload."""
        if not file_id:
            return JSONResponse({"ok": False, "error": "id is required"}, status_code=400)
        try:
            data = await drive_client.fetch(file_id, lines)
        except BridgeError as e:
            return JSONResponse({"ok": False, "error": str(e)}, status_code=424)
        return {"ok": True, "data": data}

    # Monitoring Endpoints
    @app.get("/health")
    async def health_check():
        """Health check endpoint; also asks the backend for its health."""
        try:
            backend = await drive_client.health()
        except BridgeError as e:
            logger.warning(f"Backend health check failed: {e}")
            return JSONResponse({"ok": False, "gas": False, "error": str(e)}, status_code=424)
        return {
            "ok": True,
            "service": SERVICE_NAME,
            "version": __version__,
            "protocol": settings.protocol_version,
            "gas": bool(backend.get("ok")),
            "ts": backend.get("ts"),
        }

    @app.get("/")
    async def root():
        return PlainTextResponse("Drive MCP bridge is running.")

    return app


def main():
    """Run the Dispatcher with uvicorn."""
    settings = Settings.from_env()
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
    logger.info(f"Drive bridge listening on :{settings.port}")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
