"""Shared fixtures for the oauth2-relay test suite."""
from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest
import redis.asyncio as redis

from oauth2_relay.client import OAuth2Client
from oauth2_relay.config import Settings
from oauth2_relay.flow import FlowOrchestrator, RequestContext
from oauth2_relay.providers import ProviderConfig, ProviderRegistry
from oauth2_relay.state import StateTokenGenerator
from oauth2_relay.stores import MemoryTokenStore

NOW = 1_700_000_000.0
RETURN_URI = "myapp://oauth2/done"
CALLBACK_URI = "http://testserver/oauth2/acme/callback"


class FakeClock:
    """Settable replacement for time.time."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ProviderEndpoint:
    """Scripted provider endpoints for httpx.MockTransport."""

    def __init__(self):
        self.responses: list = []
        self.requests: list[httpx.Request] = []

    def reply(self, status: int, body=None) -> None:
        self.responses.append((status, body))

    def fail(self, exc: Exception) -> None:
        self.responses.append(exc)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            return httpx.Response(500, text="no scripted response")
        scripted = self.responses.pop(0)
        if isinstance(scripted, Exception):
            raise scripted
        status, body = scripted
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body or "")

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/token"]

    def form(self, index: int = -1) -> dict[str, str]:
        body = self.requests[index].content.decode()
        return {key: values[0] for key, values in parse_qs(body).items()}


class FakeRedis:
    """The subset of redis.asyncio.Redis used by RedisTokenStore."""

    def __init__(self, broken: bool = False):
        self.data: dict[str, str] = {}
        self.broken = broken

    def _check(self):
        if self.broken:
            raise redis.ConnectionError("connection refused")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value):
        self._check()
        self.data[key] = value
        return True

    async def delete(self, key):
        self._check()
        return 1 if self.data.pop(key, None) is not None else 0

    async def aclose(self):
        pass


class RefusingSession:
    """AsyncSession stand-in for a database that refuses connections.

    asyncpg raises a bare ConnectionRefusedError when the pool connects,
    which SQLAlchemy does not wrap.
    """

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def _refuse(self, *args, **kwargs):
        raise ConnectionRefusedError(111, "Connect call failed")

    get = execute = merge = commit = scalar = _refuse


@pytest.fixture
def acme() -> ProviderConfig:
    return ProviderConfig(
        name="acme",
        authorization_uri="https://acme.example/auth",
        token_uri="https://acme.example/token",
        revoke_uri="https://acme.example/revoke",
        client_id="cid",
        client_secret="sec",
        scope="read",
    )


@pytest.fixture
def registry(acme) -> ProviderRegistry:
    return ProviderRegistry({"acme": acme})


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        return_uri=RETURN_URI,
        state_secret="test-state-secret",
        secure_cookies=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def endpoint() -> ProviderEndpoint:
    return ProviderEndpoint()


@pytest.fixture
def http_client(endpoint) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(endpoint))


@pytest.fixture
def oauth_client(http_client, clock) -> OAuth2Client:
    return OAuth2Client(http_client=http_client, clock=clock)


@pytest.fixture
def states() -> StateTokenGenerator:
    return StateTokenGenerator("test-state-secret")


@pytest.fixture
def store() -> MemoryTokenStore:
    return MemoryTokenStore()


@pytest.fixture
def orchestrator(registry, states, oauth_client, store, clock) -> FlowOrchestrator:
    return FlowOrchestrator(
        registry=registry,
        states=states,
        client=oauth_client,
        store=store,
        return_uri=RETURN_URI,
        clock=clock,
    )


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(device_id="dev-1", provider_name="acme", redirect_uri=CALLBACK_URI)
