"""Shared pytest fixtures for backend tests."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from app.main import app


class MockDB:
    """Patches a module's get_connection() with a mock asyncpg connection.

    Usage:
        mock_db = MockDB("app.api.gameweeks.get_connection")
        mock_db.conn.fetch.return_value = [...]
        with mock_db:
            ...
    """

    def __init__(self, target: str):
        self.target = target
        self.conn = AsyncMock()
        # conn.transaction() is sync and returns an async context manager
        self.conn.transaction = MagicMock()
        self._patcher = patch(target)

    def __enter__(self) -> "MockDB":
        mock_get_conn = self._patcher.start()
        mock_get_conn.return_value.__aenter__.return_value = self.conn
        return self

    def __exit__(self, *exc_info) -> None:
        self._patcher.stop()


@pytest.fixture
def mock_conn() -> AsyncMock:
    """A mock asyncpg connection with a usable transaction() context."""
    conn = AsyncMock()
    conn.transaction = MagicMock()
    return conn


@pytest.fixture
async def async_client():
    """Async HTTP client for testing the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
