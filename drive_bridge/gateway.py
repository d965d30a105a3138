"""SSE gateway that fronts the Dispatcher.

Owns CORS, shared-secret auth and the SSE handshake, and forwards JSON-RPC
POSTs to the upstream Dispatcher. The handshake never touches the upstream,
so clients can connect while the Dispatcher restarts.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, Optional

import httpx
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.background import BackgroundTask
from starlette.datastructures import Headers, MutableHeaders
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from . import __version__
from .config import Settings
from .jsonrpc.models import ErrorCode, error_envelope
from .mcp_transport import MCPTransport, resolve_base_url
from .utils.errors import ConfigurationError, UnauthorizedError
from .utils.security import TOKEN_HEADER, auth_failure, check_token, extract_token

logger = logging.getLogger(__name__)

GATEWAY_NAME = "drive-bridge-gateway"

CORS_ALLOW_METHODS = "GET,POST,HEAD,OPTIONS"
CORS_ALLOW_HEADERS = "content-type,authorization,x-bridge-token,x-custom-auth-headers,accept"

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}


def cors_headers(origin: Optional[str], allowed_origins: Iterable[str]) -> Dict[str, str]:
    """CORS headers for a request origin.

    Exact allow-list matches are echoed (with credentials), anything else
    falls back to the wildcard.
    """
    headers = {
        "Vary": "Origin",
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
    }
    if origin and origin in allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
    else:
        headers["Access-Control-Allow-Origin"] = "*"
    return headers


class GatewayCORSMiddleware:
    """Applies CORS headers to every response; answers OPTIONS directly."""

    def __init__(self, app: ASGIApp, allowed_origins: Iterable[str]):
        self.app = app
        self.allowed_origins = frozenset(allowed_origins)

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        origin = Headers(scope=scope).get("origin")
        headers = cors_headers(origin, self.allowed_origins)

        if scope["method"] == "OPTIONS":
            response = Response(status_code=204, headers=headers)
            await response(scope, receive, send)
            return

        async def send_with_cors(message: Message):
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for key, value in headers.items():
                    if key == "Vary":
                        response_headers.add_vary_header(value)
                    else:
                        response_headers[key] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)


def hello_message(settings: Settings) -> Dict[str, Any]:
    """initialize-shaped welcome sent on every gateway handshake."""
    return {
        "jsonrpc": "2.0",
        "id": "0",
        "result": {
            "protocolVersion": settings.protocol_version,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": GATEWAY_NAME, "version": __version__},
        },
    }


def relay_headers(upstream_headers: httpx.Headers) -> Dict[str, str]:
    """Upstream response headers minus hop-by-hop ones."""
    return {
        key: value
        for key, value in upstream_headers.items()
        if key.lower() not in HOP_BY_HOP_HEADERS
    }


def create_gateway_app(
    settings: Optional[Settings] = None,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the gateway app.

    Args:
        settings: Process settings; read from the environment when omitted
        upstream_transport: Optional httpx transport for the Dispatcher
    """
    settings = settings or Settings.from_env()
    mcp_transport = MCPTransport(settings)
    # Only connecting is bounded; a slow tool call keeps its stream open
    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(None, connect=10.0), transport=upstream_transport
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Gateway forwarding {settings.messages_path} to {settings.upstream_url}")
        if not settings.bridge_token:
            logger.warning("BRIDGE_TOKEN is not set; all authenticated requests will be refused")
        yield
        await http_client.aclose()

    app = FastAPI(title="Drive Bridge Gateway", version=__version__, lifespan=lifespan)
    app.add_middleware(GatewayCORSMiddleware, allowed_origins=settings.allowed_origins)
    app.state.settings = settings

    async def require_token(request: Request) -> str:
        token = extract_token(request.headers, request.query_params)
        check_token(token, settings.bridge_token)
        return token

    @app.exception_handler(UnauthorizedError)
    @app.exception_handler(ConfigurationError)
    async def auth_error_handler(request: Request, exc: Exception):
        logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
        status_code, body = auth_failure(exc)
        return JSONResponse(body, status_code=status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return PlainTextResponse("Not Found", status_code=404)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.head(settings.messages_path)
    async def mcp_head_endpoint():
        """Connector preflight: reachable without a token."""
        return Response(status_code=200, headers={"Cache-Control": "no-store"})

    @app.get("/health")
    async def health_check():
        return {"ok": True}

    @app.get(settings.messages_path)
    async def mcp_get_endpoint(request: Request, token: str = Depends(require_token)):
        """SSE handshake: endpoint event, hello message, then keepalives."""
        stream = mcp_transport.open_stream(request, token)
        stream.send(hello_message(settings), event="message")
        return mcp_transport.stream_response(stream)

    @app.post(settings.messages_path)
    async def mcp_post_endpoint(request: Request, token: str = Depends(require_token)):
        """Forward a JSON-RPC POST to the Dispatcher and stream the reply back."""
        body = await request.body()
        scheme, host = resolve_base_url(request, settings.trust_forwarded).split("://", 1)
        headers = {
            "content-type": request.headers.get("content-type", "application/json"),
            "accept": request.headers.get("accept", "application/json"),
            # raw bytes are relayed, so only ask for what the caller can decode
            "accept-encoding": request.headers.get("accept-encoding", "identity"),
            TOKEN_HEADER: settings.bridge_token,
            "x-forwarded-for": request.client.host if request.client else "",
            "x-forwarded-proto": scheme,
            "x-forwarded-host": host,
        }

        upstream_request = http_client.build_request(
            "POST", settings.upstream_url, content=body, headers=headers
        )
        try:
            upstream = await http_client.send(upstream_request, stream=True)
        except httpx.TransportError as e:
            logger.warning(f"Upstream {settings.upstream_url} unavailable: {e!r}")
            return JSONResponse(
                error_envelope(
                    ErrorCode.UPSTREAM_UNAVAILABLE,
                    f"Upstream error: {type(e).__name__}: {e}",
                ),
                status_code=502,
            )

        return StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            headers=relay_headers(upstream.headers),
            background=BackgroundTask(upstream.aclose),
        )

    return app


def main():
    """Run the gateway with uvicorn."""
    settings = Settings.from_env()
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
    logger.info(
        f"Drive bridge gateway listening on :{settings.gateway_port} "
        f"(GET/POST {settings.messages_path})"
    )
    uvicorn.run(create_gateway_app(settings), host=settings.host, port=settings.gateway_port)


if __name__ == "__main__":
    main()
