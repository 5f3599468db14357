"""FastAPI application entry point for the LeaseHub matching API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from leasehub.app.config import get_settings
from leasehub.app.deps import get_kpi_cache
from leasehub.domain.schemas import HealthResponse
from leasehub.infra.database import init_db
from leasehub.services.kpi_cache import RedisKPIStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database on startup, release redis on shutdown."""
    await init_db()
    yield
    store = get_kpi_cache().store
    if isinstance(store, RedisKPIStore):
        await store.close()


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="LeaseHub Matching API",
    lifespan=lifespan,
    debug=settings.debug,
)

_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from leasehub.app.routes.matching import router as matching_router
from leasehub.app.routes.dashboard import router as dashboard_router
from leasehub.app.routes.ws import router as ws_router

app.include_router(matching_router)
app.include_router(dashboard_router)
app.include_router(ws_router)


@app.get("/health", tags=["health"], response_model=HealthResponse)
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "leasehub-matching"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "leasehub.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
