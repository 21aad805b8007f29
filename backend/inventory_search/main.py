import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from inventory_search.database import engine
from inventory_search.search.cache import get_search_cache
from inventory_search.search.tasks import wait_for_background_tasks

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan: startup and shutdown events."""
    # Startup: decide whether the search cache starts enabled
    cache = get_search_cache()
    await cache.probe()

    yield
    # Shutdown: let pending cache/analytics writes finish before closing Redis
    await wait_for_background_tasks(timeout=5.0)
    await cache.close()
    await engine.dispose()


app = FastAPI(
    title="Equipment Inventory Search",
    description="Search across sites, cells, equipment, and PLCs",
    version="0.1.0",
    lifespan=lifespan,
)

# --- Router includes ---
from inventory_search.api.search import router as search_router  # noqa: E402

app.include_router(search_router, prefix="/api")


@app.get("/api/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns a simple status response to verify the API is running.
    """
    return {"status": "ok"}
