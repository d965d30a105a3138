"""Tests for environment-driven settings."""
import pytest

from drive_bridge.config import Settings


class TestSettingsFromEnv:
    def test_defaults_fail_closed(self):
        settings = Settings.from_env({})

        assert settings.bridge_token == ""
        assert settings.protocol_version == "2024-11-05"
        assert settings.allowed_origins == ("https://chat.openai.com", "https://chatgpt.com")

    def test_bridge_token_precedence(self):
        settings = Settings.from_env({"TOKEN": "old", "BRIDGE_TOKEN": "new"})

        assert settings.bridge_token == "new"
        assert Settings.from_env({"TOKEN": "old"}).bridge_token == "old"

    def test_values_parsed(self):
        settings = Settings.from_env({
            "GAS_BASE_URL": "https://script.google.com/macros/s/abc/exec/",
            "DEBUG": "1",
            "PORT": "8080",
            "ALLOWED_ORIGINS": "https://a.example, https://b.example,",
            "KEEPALIVE_SECONDS": "15",
            "MESSAGES_PATH": "rpc",
            "TRUST_FORWARDED": "false",
        })

        assert settings.backend_base_url == "https://script.google.com/macros/s/abc/exec"
        assert settings.debug is True
        assert settings.port == 8080
        assert settings.allowed_origins == ("https://a.example", "https://b.example")
        assert settings.keepalive_seconds == 15.0
        assert settings.messages_path == "/rpc"
        assert settings.trust_forwarded is False

    def test_settings_are_frozen(self):
        settings = Settings.from_env({})

        with pytest.raises(Exception):
            settings.bridge_token = "changed"
