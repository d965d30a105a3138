"""SSE handshake transport: advertises where JSON-RPC messages go."""
import logging
from typing import Optional
from urllib.parse import urlencode

from starlette.requests import Request
from starlette.responses import StreamingResponse

from .config import Settings
from .mcp_session import SessionStream
from .utils.security import TOKEN_QUERY_PARAM

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-store",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _first(value: Optional[str]) -> str:
    """First entry of a comma-separated forwarded header."""
    return (value or "").split(",")[0].strip()


def resolve_base_url(request: Request, trust_forwarded: bool = True) -> str:
    """Externally reachable ``scheme://host`` for a request.

    Behind a reverse proxy the connection scheme seen by the process is not
    the client's, so X-Forwarded-Proto/Host win when trusted.
    """
    scheme = request.url.scheme
    host = request.headers.get("host") or request.url.netloc

    if trust_forwarded:
        scheme = _first(request.headers.get("x-forwarded-proto")) or scheme
        host = _first(request.headers.get("x-forwarded-host")) or host

    return f"{scheme}://{host}"


def resolve_messages_url(
    request: Request, messages_path: str = "/mcp", trust_forwarded: bool = True
) -> str:
    """Absolute URL clients must POST JSON-RPC messages to.

    A token presented as a query parameter is carried over so the advertised
    URL authenticates the same way the handshake did.
    """
    url = resolve_base_url(request, trust_forwarded) + messages_path
    token = request.query_params.get(TOKEN_QUERY_PARAM)
    if token:
        url += "?" + urlencode({TOKEN_QUERY_PARAM: token})
    return url


class MCPTransport:
    """Handles the streaming handshake (GET on the messages path)."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def open_stream(self, request: Request, token: Optional[str] = None) -> SessionStream:
        """Create a stream with the endpoint event already queued."""
        stream = SessionStream(
            keepalive_interval=self.settings.keepalive_seconds, token=token
        )
        messages_url = resolve_messages_url(
            request, self.settings.messages_path, self.settings.trust_forwarded
        )
        stream.send({"messages": messages_url}, event="endpoint")
        logger.debug(f"Advertised messages endpoint {messages_url} on {stream.stream_id}")
        return stream

    @staticmethod
    def stream_response(stream: SessionStream) -> StreamingResponse:
        """Wrap a stream in a text/event-stream response."""
        return StreamingResponse(
            stream.frames(), media_type="text/event-stream", headers=SSE_HEADERS
        )

    async def handle_get_request(self, request: Request, token: Optional[str] = None) -> StreamingResponse:
        """Open the handshake stream for an authenticated GET."""
        return self.stream_response(self.open_stream(request, token))
