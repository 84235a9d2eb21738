"""
Shared test fixtures.

HTTP is faked with httpx.MockTransport routed through FakeApi; time-dependent
components get a FakeClock (and its sleep) instead of the wall clock.
"""

import inspect
import time
from typing import Any, Callable

import httpx
import jwt
import pytest
import pytest_asyncio

from swapclient.datastore.engine import close_db, init_db
from swapclient.datastore.repositories import RoscaRepository
from swapclient.models import RoscaEnrollment, RoscaPayment, RoscaPool
from swapclient.services.client import ApiClient
from swapclient.services.tokens import TokenStore
from swapclient.settings import Settings


# ============================================================================
# Time
# ============================================================================


class FakeClock:
    """Manually advanced clock; its sleep advances time instead of waiting."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================================
# Tokens
# ============================================================================


def make_token(expires_in: float, subject: str = "user-1") -> str:
    """Signed JWT expiring `expires_in` seconds from now (negative = expired)."""
    payload = {"sub": subject, "exp": int(time.time() + expires_in)}
    return jwt.encode(payload, "test-secret", algorithm="HS256")


@pytest.fixture
def valid_token():
    return make_token(3600)


@pytest.fixture
def expired_token():
    return make_token(-60)


# ============================================================================
# Fake API
# ============================================================================


def json_response(data: Any, status_code: int = 200, headers: dict[str, str] | None = None) -> httpx.Response:
    return httpx.Response(status_code, json=data, headers=headers)


class FakeApi:
    """
    Route table behind httpx.MockTransport.

    Handlers take the httpx.Request and return an httpx.Response (sync or async).
    Unrouted requests get a 404.
    """

    def __init__(self, prefix: str = "/api/v1"):
        self.prefix = prefix
        self.handlers: dict[tuple[str, str], Callable[[httpx.Request], Any]] = {}
        self.requests: list[httpx.Request] = []

    def route(self, method: str, path: str, handler: Callable[[httpx.Request], Any]) -> None:
        self.handlers[(method.upper(), self.prefix + path)] = handler

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method.upper() and r.url.path == self.prefix + path
        ]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.get((request.method, request.url.path))
        if handler is None:
            return json_response({"message": "Not Found"}, status_code=404)

        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def transport(api):
    return httpx.MockTransport(api)


@pytest.fixture
def settings():
    return Settings(
        api_base_url="https://api.test",
        pools_sync_delay_seconds=0,
        enrollments_sync_delay_seconds=0,
    )


@pytest.fixture
def tokens(settings, transport):
    return TokenStore(refresh_url=f"{settings.api_url}/auth/refresh", transport=transport)


@pytest_asyncio.fixture
async def client(settings, tokens, transport):
    api_client = ApiClient(tokens=tokens, settings=settings, transport=transport)
    yield api_client
    await api_client.close()


# ============================================================================
# Local repository
# ============================================================================


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    factory = await init_db(f"sqlite+aiosqlite:///{tmp_path / 'swap_test.db'}")
    yield factory
    await close_db()


@pytest.fixture
def repository(session_factory, clock):
    return RoscaRepository(session_factory, clock=clock)


# ============================================================================
# Resource factories
# ============================================================================


def make_pool(pool_id: str, **overrides: Any) -> RoscaPool:
    fields = {
        "id": pool_id,
        "name": f"Pool {pool_id}",
        "contribution_amount": 50.0,
        "currency_code": "HTG",
        "frequency": "weekly",
    }
    fields.update(overrides)
    return RoscaPool(**fields)


def make_enrollment(enrollment_id: str, **overrides: Any) -> RoscaEnrollment:
    fields = {
        "id": enrollment_id,
        "pool_id": "pool-1",
        "pool_name": "Pool pool-1",
        "contribution_amount": 50.0,
        "currency_code": "HTG",
        "frequency": "weekly",
        "queue_position": 1,
        "total_members": 10,
        "total_contributed": 100.0,
        "contributions_count": 2,
        "joined_at": "2025-01-01T00:00:00Z",
    }
    fields.update(overrides)
    return RoscaEnrollment(**fields)


def make_payment(payment_id: str, enrollment_id: str, **overrides: Any) -> RoscaPayment:
    fields = {
        "id": payment_id,
        "enrollment_id": enrollment_id,
        "amount": 50.0,
        "currency_code": "HTG",
        "due_date": "2025-01-08",
        "status": "paid",
    }
    fields.update(overrides)
    return RoscaPayment(**fields)
