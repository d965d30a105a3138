"""Shared-secret authentication for bridge endpoints."""
import secrets
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ConfigurationError, UnauthorizedError
from ..jsonrpc.models import ErrorCode, error_envelope

TOKEN_HEADER = "X-Bridge-Token"
TOKEN_QUERY_PARAM = "token"


def extract_token(
    headers: Mapping[str, str], query_params: Mapping[str, str]
) -> Optional[str]:
    """Read the presented token from a request.

    The dedicated token header wins, then the ``token`` query parameter, then
    the ``Authorization`` header with any scheme prefix (``Bearer x``) removed.
    """
    explicit = (headers.get(TOKEN_HEADER) or "").strip()
    if explicit:
        return explicit

    query = (query_params.get(TOKEN_QUERY_PARAM) or "").strip()
    if query:
        return query

    authorization = (headers.get("Authorization") or "").strip()
    if not authorization:
        return None
    parts = authorization.split(None, 1)
    if len(parts) == 2:
        return parts[1].strip() or None
    return parts[0]


def check_token(presented: Optional[str], expected: Optional[str]) -> bool:
    """Validate a presented token against the configured secret.

    An unset secret authorizes no one.

    Raises:
        ConfigurationError: If no secret is configured.
        UnauthorizedError: If the token is missing or does not match.
    """
    if not expected:
        raise ConfigurationError("Bridge token is not configured")

    if not presented or not secrets.compare_digest(
        presented.encode("utf-8"), expected.encode("utf-8")
    ):
        raise UnauthorizedError("Unauthorized")

    return True


def auth_failure(exc: Exception) -> Tuple[int, Dict[str, Any]]:
    """HTTP status and JSON-RPC shaped body for an auth failure.

    Auth runs before any method is resolved, so the id is always null.
    """
    if isinstance(exc, ConfigurationError):
        return 503, error_envelope(ErrorCode.CONFIGURATION_ERROR, str(exc))
    return 401, error_envelope(ErrorCode.UNAUTHORIZED, "Unauthorized")
