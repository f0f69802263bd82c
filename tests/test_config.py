"""Tests for config.py: required settings, env loading, normalization."""
import pytest
from pydantic import ValidationError

from oauth2_relay.config import Settings


def test_missing_return_uri_fails():
    with pytest.raises(ValidationError, match="return_uri"):
        Settings(_env_file=None, state_secret="s")


def test_missing_state_secret_fails():
    with pytest.raises(ValidationError, match="state_secret"):
        Settings(_env_file=None, return_uri="myapp://done")


def test_blank_state_secret_fails():
    with pytest.raises(ValidationError, match="must not be empty"):
        Settings(_env_file=None, return_uri="myapp://done", state_secret="   ")


def test_defaults(settings):
    assert settings.route_prefix == "/oauth2"
    assert settings.storage_backend == "memory"
    assert settings.http_timeout == 10.0
    assert settings.expiry_margin == 5
    assert settings.freshness_window == 60
    assert settings.device_cookie_name == "device_id"
    assert settings.device_header_name == "X-Device-Id"


def test_loads_from_env(monkeypatch):
    monkeypatch.setenv("OAUTH2_RELAY_RETURN_URI", "myapp://env")
    monkeypatch.setenv("OAUTH2_RELAY_STATE_SECRET", "env-secret")
    monkeypatch.setenv("OAUTH2_RELAY_STORAGE_BACKEND", "redis")
    monkeypatch.setenv("OAUTH2_RELAY_GOOGLE_CLIENT_ID", "gid")

    settings = Settings(_env_file=None)
    assert settings.return_uri == "myapp://env"
    assert settings.state_secret == "env-secret"
    assert settings.storage_backend == "redis"
    assert settings.google_client_id == "gid"


def test_unknown_storage_backend_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, return_uri="x", state_secret="s", storage_backend="firestore")


def test_route_prefix_normalized():
    settings = Settings(_env_file=None, return_uri="x", state_secret="s", route_prefix="relay/")
    assert settings.route_prefix == "/relay"


def test_base_url_trailing_slash_stripped():
    settings = Settings(_env_file=None, return_uri="x", state_secret="s", base_url="https://relay.example/")
    assert settings.base_url == "https://relay.example"
