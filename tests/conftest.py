import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

# Run tests against the flat modules at the project root
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.append(str(PROJECT_ROOT))

os.environ.setdefault("CLIENT_ID", "test-client-id")
os.environ.setdefault("CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("HOST", "https://relay.example.com")

from app import app, get_token_client  # noqa: E402
from settings import Settings, get_settings  # noqa: E402
from twitch_oauth import TwitchTokenClient  # noqa: E402

FIXED_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeTwitch:
    """Stands in for https://id.twitch.tv/oauth2/token and records every call."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.payload = {"access_token": "AT1", "refresh_token": "RT1", "expires_in": 3600}
        self.error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if isinstance(self.payload, str):
            return httpx.Response(self.status_code, text=self.payload)
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def last_params(self) -> dict:
        return dict(self.requests[-1].url.params)


def make_settings(**overrides) -> Settings:
    values = {
        "CLIENT_ID": "cid",
        "CLIENT_SECRET": "secret",
        "HOST": "https://relay.example.com",
        "ENV": "DEV",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def twitch() -> FakeTwitch:
    return FakeTwitch()


@pytest.fixture
def token_client(settings, twitch) -> TwitchTokenClient:
    return TwitchTokenClient(settings, transport=httpx.MockTransport(twitch.handler), clock=lambda: FIXED_NOW)


@pytest.fixture
def client(settings, token_client):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_token_client] = lambda: token_client
    try:
        yield TestClient(app, follow_redirects=False)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def settings_factory():
    return make_settings
