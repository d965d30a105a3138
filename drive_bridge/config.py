"""Process configuration, read from the environment once at startup."""
import os
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_ALLOWED_ORIGINS = ("https://chat.openai.com", "https://chatgpt.com")


def _env_flag(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Immutable settings shared by the Dispatcher and the Gateway."""

    model_config = ConfigDict(frozen=True)

    bridge_token: str = ""
    backend_base_url: str = ""
    backend_key: str = ""
    backend_timeout: float = 30.0
    protocol_version: str = "2024-11-05"
    debug: bool = False

    host: str = "0.0.0.0"
    port: int = 10000

    gateway_port: int = 5051
    upstream_url: str = "http://127.0.0.1:10000/mcp"
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS

    keepalive_seconds: float = Field(default=25.0, gt=0)
    messages_path: str = "/mcp"
    trust_forwarded: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from; defaults to ``os.environ``.
        """
        env = os.environ if environ is None else environ

        origins = env.get("ALLOWED_ORIGINS")
        if origins is None:
            allowed_origins = DEFAULT_ALLOWED_ORIGINS
        else:
            allowed_origins = tuple(o.strip() for o in origins.split(",") if o.strip())

        messages_path = env.get("MESSAGES_PATH", "/mcp") or "/mcp"
        if not messages_path.startswith("/"):
            messages_path = "/" + messages_path

        return cls(
            bridge_token=(env.get("BRIDGE_TOKEN") or env.get("TOKEN") or "").strip(),
            backend_base_url=(env.get("GAS_BASE_URL") or "").rstrip("/"),
            backend_key=env.get("GAS_KEY", ""),
            backend_timeout=float(env.get("BACKEND_TIMEOUT", "30")),
            protocol_version=env.get("MCP_PROTOCOL", "2024-11-05"),
            debug=env.get("DEBUG", "0") == "1",
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT", "10000")),
            gateway_port=int(env.get("SSE_PORT", "5051")),
            upstream_url=env.get("CORE_URL", "http://127.0.0.1:10000/mcp"),
            allowed_origins=allowed_origins,
            keepalive_seconds=float(env.get("KEEPALIVE_SECONDS", "25")),
            messages_path=messages_path,
            trust_forwarded=_env_flag(env.get("TRUST_FORWARDED"), True),
        )
