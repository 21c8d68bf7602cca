"""
Shared pytest fixtures for the stage sync tests.
"""
import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from api_client import PregnancyApiClient
from context import SyncContext
from main import app
from seed import seed_data
from storage import MemoryStorageArea

BASE_URL = "http://testserver"


@pytest.fixture
def client():
    """FastAPI TestClient."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def seeded_data():
    """Every test starts from an empty server state."""
    seed_data()
    yield
    seed_data()


@pytest.fixture
def storage():
    """Storage area shared by every simulated tab of one test."""
    return MemoryStorageArea()


class SwitchableTransport(httpx.AsyncBaseTransport):
    """
    Routes requests to the in-process app while online; raises ConnectError
    while offline. `delay` holds each request back before it is handled.
    """

    def __init__(self, online: bool = True, delay: float = 0.0):
        self.online = online
        self.delay = delay
        self.requests = []
        self._app = httpx.ASGITransport(app=app)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.online:
            raise httpx.ConnectError("network unreachable", request=request)
        return await self._app.handle_async_request(request)


@pytest.fixture
def transport():
    return SwitchableTransport()


def make_api(transport, timeout: float = 5.0) -> PregnancyApiClient:
    return PregnancyApiClient(BASE_URL, timeout=timeout, transport=transport)


def make_context(storage, transport, **kwargs) -> SyncContext:
    """One simulated tab. Call inside the running loop of the test."""
    kwargs.setdefault("retry_base_delay", 0.0)
    kwargs.setdefault("retry_attempts", 1)
    return SyncContext(storage, make_api(transport), **kwargs)


def run(coro):
    """Run an async test body."""
    return asyncio.run(coro)
