"""
rankboard.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn rankboard.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from rankboard import __version__  # noqa: E402
from rankboard.api.deps import get_cache, get_config, get_engine  # noqa: E402
from rankboard.api.responses import install_exception_handlers  # noqa: E402
from rankboard.api.routes.games import router as games_router  # noqa: E402
from rankboard.api.routes.leaderboards import router as leaderboards_router  # noqa: E402
from rankboard.api.routes.players import router as players_router  # noqa: E402
from rankboard.engine.cache import LeaderboardCache, build_cache  # noqa: E402

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the cache and warm the DB engine; close the cache on shutdown."""
    app.state.cache = build_cache(get_config())
    engine = get_engine()
    logger.info(
        "Rankboard API started (cache=%s, db=%s)",
        app.state.cache.backend_name, engine.url.database,
    )
    yield
    app.state.cache.close()
    logger.info("Rankboard API shutting down")


app = FastAPI(
    title="Rankboard API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_exception_handlers(app)

app.include_router(leaderboards_router, prefix="/api")
app.include_router(players_router, prefix="/api")
app.include_router(games_router, prefix="/api")


@app.get("/api/health")
def health(cache: LeaderboardCache = Depends(get_cache)):
    return {"status": "ok", "cache": cache.backend_name}
