"""Tests for settings loading."""
import pytest
from pydantic import ValidationError

from relay.config import AppConfig, get_config, load_config, reset_config


@pytest.fixture(autouse=True)
def _fresh_config():
    reset_config()
    yield
    reset_config()


def test_defaults():
    """AppConfig() should match the documented defaults."""
    config = AppConfig()

    assert config.server.port == 3000
    assert config.realtime.namespaces == ["chat", "refund", "cancellation", "order"]
    assert config.presence.evict_superseded_connections is True
    assert config.presence.read_ledger_size == 10000
    assert config.presence.read_ledger_messages == 500
    assert config.realtime.outbox_size == 256


def test_load_from_yaml(tmp_path):
    settings = tmp_path / "relay.settings.yaml"
    settings.write_text(
        "server:\n"
        "  port: 4000\n"
        "  allowed_origins: ['https://toko.example']\n"
        "realtime:\n"
        "  namespaces: ['chat', 'order']\n"
        "presence:\n"
        "  evict_superseded_connections: false\n"
    )

    config = load_config(settings)

    assert config.server.port == 4000
    assert config.server.allowed_origins == ["https://toko.example"]
    assert config.realtime.namespaces == ["chat", "order"]
    assert config.presence.evict_superseded_connections is False


def test_missing_file_uses_defaults(tmp_path):
    """A missing settings file is logged and falls back to defaults."""
    config = load_config(tmp_path / "absent.yaml")
    assert config == AppConfig()


def test_empty_file_uses_defaults(tmp_path):
    settings = tmp_path / "relay.settings.yaml"
    settings.write_text("")
    assert load_config(settings) == AppConfig()


def test_env_var_selects_file(tmp_path, monkeypatch):
    """RELAY_SETTINGS should point get_config at another file."""
    settings = tmp_path / "custom.yaml"
    settings.write_text("server:\n  port: 5050\n")
    monkeypatch.setenv("RELAY_SETTINGS", str(settings))

    assert get_config().server.port == 5050
    assert get_config() is get_config()


def test_unknown_namespace_rejected(tmp_path):
    """Only the four relay namespaces can be enabled."""
    settings = tmp_path / "relay.settings.yaml"
    settings.write_text("realtime:\n  namespaces: ['chat', 'payments']\n")

    with pytest.raises(ValidationError):
        load_config(settings)


def test_ledger_size_must_be_positive():
    with pytest.raises(ValidationError):
        AppConfig.model_validate({"presence": {"read_ledger_size": 0}})
