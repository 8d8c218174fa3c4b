"""Tests for bootstrap configuration checks."""
from pathlib import Path

import pytest

from conversationbot import config
from conversationbot.config import Settings, ConfigurationError


def test_telegram_gateway_requires_token():
    with pytest.raises(ConfigurationError):
        Settings(GATEWAY="telegram", TELEGRAM_TOKEN="").validate_bootstrap()


def test_telegram_gateway_with_token_is_valid():
    Settings(GATEWAY="telegram", TELEGRAM_TOKEN="123:abc").validate_bootstrap()


def test_websocket_gateway_needs_no_token():
    Settings(GATEWAY="WebSocket", TELEGRAM_TOKEN="").validate_bootstrap()


def test_unknown_gateway_is_rejected():
    with pytest.raises(ConfigurationError):
        Settings(GATEWAY="carrier-pigeon").validate_bootstrap()


def test_storage_defaults_to_data_volume(monkeypatch):
    monkeypatch.setattr(config.os.path, "isdir", lambda path: path == "/data")
    assert config._default_storage_file() == "/data/conversationbot.json"

    monkeypatch.setattr(config.os.path, "isdir", lambda path: False)
    assert config._default_storage_file() == "conversationbot.json"


def test_env_file_ignores_unrelated_keys(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("GATEWAY=websocket\nSOMETHING_ELSE=1\n")

    app_settings = Settings(_env_file=str(env_file))

    assert not hasattr(app_settings, "SOMETHING_ELSE")


def test_container_image_mounts_data_volume():
    dockerfile = (Path(__file__).parent.parent / "Dockerfile").read_text()

    assert 'VOLUME ["/data"]' in dockerfile
    assert 'CMD ["conversationbot"]' in dockerfile
    assert "pip install" in dockerfile
