# @TASK P0-T0.3 - Test configuration
import os
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing aitelier modules
os.environ.setdefault("DATABASE_URL", "postgresql+asyncpg://aitelier:aitelier@db:5432/aitelier_test")
os.environ.setdefault("TOGETHER_API_KEY", "test-together-key")
os.environ.setdefault("PROVIDER_RETRY_DELAY", "0")


class FakeProvider:
    """Completion/fine-tune provider double that records every call.

    ``outputs`` maps a model id to the text it returns; ``fail_on`` maps a
    model id to the exception it raises.
    """

    name = "fake"

    def __init__(self, outputs: dict | None = None, fail_on: dict | None = None):
        self.outputs = outputs or {}
        self.fail_on = fail_on or {}
        self.calls: list[tuple[str, str | None, str]] = []
        self.closed = False

    async def generate(self, model, system_prompt, user_input, **kwargs):
        self.calls.append((model, system_prompt, user_input))
        if model in self.fail_on:
            raise self.fail_on[model]
        return f"{self.outputs.get(model, model)}: {user_input}"

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def provider_factory():
    """Build a FakeProvider with custom outputs / failures inside a test."""
    return FakeProvider


@pytest.fixture
def mock_db() -> AsyncMock:
    """AsyncSession stand-in: ``add`` is synchronous like the real session."""
    db = AsyncMock()
    db.add = MagicMock()
    return db


@pytest_asyncio.fixture(scope="function")
async def test_app(mock_db: AsyncMock):
    """Provide the FastAPI app with ``get_db`` yielding the mock session."""
    from aitelier.database import get_db
    from aitelier.main import app

    async def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client bound to the app without a network."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
