"""HTTP client for the Drive backend (Apps Script web app)."""
import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from .query_builder import QueryBuilder
from ..utils.errors import BackendError, BackendUnreachableError, ConfigurationError

logger = logging.getLogger(__name__)

# Apps Script ContentService answers with a redirect to this host
CONTENT_REDIRECT_HOST = re.compile(r"^https://script\.googleusercontent\.com/", re.IGNORECASE)


def normalize_payload(body: Dict[str, Any]) -> Any:
    """Collapse flat ``{data}`` and nested ``{data: {data}}`` envelopes."""
    data = body.get("data")
    if isinstance(data, dict) and "data" in data:
        data = data["data"]
    return data


def check_envelope(body: Any) -> Dict[str, Any]:
    """Raise BackendError unless ``body`` is a success envelope."""
    if not isinstance(body, dict):
        raise BackendError(f"Backend returned unexpected JSON: {type(body).__name__}")

    if body.get("ok") is False or body.get("error"):
        message = body.get("error") or "Backend reported failure"
        if isinstance(message, dict):
            message = message.get("message") or str(message)
        raise BackendError(str(message))

    return body


class DriveClient:
    """Issues action calls against a single configured backend URL."""

    def __init__(
        self,
        base_url: str,
        access_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Drive client.

        Args:
            base_url: Backend web app URL (query string is appended per action)
            access_key: Backend credential sent as the ``token`` parameter
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.base_url = base_url.rstrip("/")
        self.access_key = access_key
        self.query_builder = QueryBuilder(access_key)
        self.client = httpx.AsyncClient(
            timeout=timeout, follow_redirects=False, transport=transport
        )

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def search(self, query: str, max_results: int) -> List[Any]:
        """Search files; returns the normalized result list."""
        body = await self._request(self.query_builder.build_search(query, max_results))
        data = normalize_payload(body)
        if data is None:
            return []
        return data if isinstance(data, list) else [data]

    async def fetch(self, file_id: str, lines: Optional[str] = None) -> Any:
        """Fetch a file's content; returns the normalized payload."""
        body = await self._request(self.query_builder.build_fetch(file_id, lines))
        return normalize_payload(body)

    async def health(self) -> Dict[str, Any]:
        """Call the backend health action."""
        return await self._request(self.query_builder.build_health())

    async def _request(self, params: Dict[str, str]) -> Dict[str, Any]:
        if not self.base_url or not self.access_key:
            raise ConfigurationError("Backend not configured (GAS_BASE_URL / GAS_KEY)")

        action = params.get("action")
        try:
            response = await self.client.get(self.base_url, params=params)

            # Follow the ContentService redirect once, nothing else
            location = response.headers.get("location")
            if response.status_code in (302, 303) and location:
                if CONTENT_REDIRECT_HOST.match(location):
                    response = await self.client.get(location, follow_redirects=True)

            content_type = response.headers.get("content-type", "").lower()
            if "application/json" not in content_type:
                text = response.text
                raise BackendError(
                    f"Backend returned non-JSON ({response.status_code} "
                    f"{content_type or 'no-ct'}): {text[:200]}",
                    status_code=response.status_code,
                )

            body = response.json()
        except httpx.TransportError as e:
            logger.warning(f"Backend unreachable for action {action}: {e!r}")
            raise BackendUnreachableError(f"Backend unreachable: {e}") from e
        except ValueError as e:
            raise BackendError(f"Backend returned invalid JSON: {e}") from e

        logger.debug(f"Backend {action} -> {str(body)[:200]}")
        return check_envelope(body)
