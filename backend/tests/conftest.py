import os
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app modules
os.environ.setdefault("DATABASE_URL", "postgresql+asyncpg://inventory:inventory@db:5432/inventory_test")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


def make_row(plc_id: str, score: float = 0.5, **overrides) -> dict:
    """Build one ``mv_equipment_search`` row as returned by ``result.mappings()``."""
    row = {
        "plc_id": plc_id,
        "tag_id": f"PLC-{plc_id}",
        "plc_description": f"Controller {plc_id}",
        "make": "Siemens",
        "model": "S7-1200",
        "ip_address": "10.0.0.1",
        "firmware_version": "4.5",
        "equipment_id": f"eq-{plc_id}",
        "equipment_name": "Press 1",
        "equipment_type": "PRESS",
        "cell_id": "cell-1",
        "cell_name": "Cell A",
        "line_number": "1",
        "site_id": "site-1",
        "site_name": "Plant North",
        "hierarchy_path": f"Plant North > Cell A > Press 1 > PLC-{plc_id}",
        "tags_text": "",
        "relevance_score": score,
        "highlighted_fields": None,
    }
    row.update(overrides)
    return row


def _make_result(rows: list[dict]) -> MagicMock:
    result = MagicMock()
    result.mappings.return_value.all.return_value = rows
    return result


def make_mock_session(*row_sets: list[dict]) -> AsyncMock:
    """Build a mock AsyncSession whose successive execute() calls return ``row_sets``."""
    session = AsyncMock()
    results = [_make_result(rows) for rows in row_sets] or [_make_result([])]
    session.execute = AsyncMock(side_effect=results)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


def make_mock_redis(store: dict[str, str] | None = None) -> AsyncMock:
    """Build a mock ``redis.asyncio.Redis`` backed by a plain dict."""
    data: dict[str, str] = {} if store is None else store
    redis = AsyncMock()

    async def _get(key):
        return data.get(key)

    async def _setex(key, ttl, value):
        data[key] = value
        return True

    async def _mget(keys):
        return [data.get(k) for k in keys]

    async def _scan_iter(match=None, **kwargs):
        prefix = (match or "*").rstrip("*")
        for key in list(data):
            if key.startswith(prefix):
                yield key

    redis.get = AsyncMock(side_effect=_get)
    redis.setex = AsyncMock(side_effect=_setex)
    redis.mget = AsyncMock(side_effect=_mget)
    redis.scan_iter = MagicMock(side_effect=_scan_iter)
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()
    redis.store = data
    return redis


@pytest.fixture
def mock_redis() -> AsyncMock:
    return make_mock_redis()


@pytest.fixture
def search_cache(mock_redis):
    from inventory_search.search.cache import SearchCache

    return SearchCache(mock_redis, ttl_seconds=300, analytics_ttl_seconds=86400, cooldown_seconds=30.0)


@pytest_asyncio.fixture(scope="function")
async def test_client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client whose database dependency is a mock session."""
    from inventory_search.database import get_db
    from inventory_search.main import app

    async def override_get_db():
        yield make_mock_session()

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
