"""Shared fixtures."""
import pytest

from drive_bridge.config import Settings

from fakes import BACKEND_KEY, BACKEND_URL, BRIDGE_TOKEN


@pytest.fixture
def settings():
    """Settings for a fully configured bridge."""
    return Settings(
        bridge_token=BRIDGE_TOKEN,
        backend_base_url=BACKEND_URL,
        backend_key=BACKEND_KEY,
        upstream_url="http://dispatcher.internal/mcp",
        keepalive_seconds=0.05,
    )


@pytest.fixture
def auth_headers():
    return {"X-Bridge-Token": BRIDGE_TOKEN}
