"""Shared test fixtures."""

from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mock_provider import FakeClock, FakeSender, MockGateway, content_handler, make_settings

from recipe_chat.api import create_app
from recipe_chat.config import Settings
from recipe_chat.factory import Services, ServiceFactory


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def gateway() -> MockGateway:
    return MockGateway()


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()


@pytest_asyncio.fixture
async def services(
    settings: Settings, clock: FakeClock, gateway: MockGateway, sender: FakeSender
) -> AsyncGenerator[Services, None]:
    """Fully wired services with fake outbound collaborators."""
    http = httpx.AsyncClient(transport=httpx.MockTransport(content_handler))
    built = ServiceFactory.create(settings, clock=clock, gateway=gateway, http=http)
    built.whatsapp.client = sender  # type: ignore[assignment]
    built.broadcaster.sender = sender
    await built.recipes.refresh()
    yield built
    await built.shutdown()


@pytest_asyncio.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """Test client bound to the shared services."""
    app = create_app(services=services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
