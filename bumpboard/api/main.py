"""
bumpboard.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn bumpboard.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from bumpboard import __version__  # noqa: E402
from bumpboard.api.auth import router as auth_router  # noqa: E402
from bumpboard.api.deps import get_engine  # noqa: E402
from bumpboard.api.rate_limit import configure_rate_limiter  # noqa: E402
from bumpboard.api.routes.listings import router as listings_router  # noqa: E402
from bumpboard.api.routes.profile import router as profile_router  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """CORS_ALLOW_ORIGINS (comma-separated), else FRONTEND_URL, else none."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = get_engine()
    configure_rate_limiter(engine=engine)
    logger.info("Bumpboard API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Bumpboard API shutting down")


app = FastAPI(
    title="Bumpboard API",
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

app.include_router(auth_router, prefix="/api")
app.include_router(listings_router, prefix="/api")
app.include_router(profile_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
