"""Shared test fixtures and configuration for relay tests."""
import pytest
from fastapi.testclient import TestClient

from relay.chat.dispatcher import ChatDispatcher
from relay.config import AppConfig
from relay.main import create_app


@pytest.fixture
def config():
    """Default settings, independent of any relay.settings.yaml on disk."""
    return AppConfig()


@pytest.fixture
def app(config):
    """A fresh application so every test starts with empty presence state."""
    return create_app(config)


@pytest.fixture
def client(app):
    # Entering the client shares one event loop between HTTP calls and
    # every open WebSocket session.
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def chat():
    return ChatDispatcher()


def send(ws, event, data=None):
    """Send one relay frame."""
    ws.send_json({"type": event, "data": data})


def receive_until(ws, event, max_frames=50):
    """Receive frames until one of type ``event`` arrives and return its data."""
    for _ in range(max_frames):
        frame = ws.receive_json()
        if frame["type"] == event:
            return frame["data"]
    raise AssertionError(f"No {event!r} frame within {max_frames} frames")
