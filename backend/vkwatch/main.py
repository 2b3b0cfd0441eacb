from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import keywords_router, watchlist_router
from .database import DATABASE_URL, engine
from .models.base import Base

# Import all models so Base.metadata knows about them
from .models import content, keywords, matches, watchlist  # noqa: F401
from .worker.main import create_poller

logger = logging.getLogger(__name__)

WATCHLIST_POLLER_ENABLED: bool = (
    os.getenv("WATCHLIST_POLLER_ENABLED", "true").lower() == "true"
)

poller = create_poller()

app = FastAPI(
    title="vkwatch",
    version="0.1.0",
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if os.getenv("DEBUG", "false").lower() == "true" else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# CORS: restrict to frontend origin only
# ---------------------------------------------------------------------------

_ALLOWED_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000"
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(keywords_router)
app.include_router(watchlist_router)


# ---------------------------------------------------------------------------
# Global error handler: prevent stack trace leakage
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a generic error message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


@app.on_event("startup")
async def on_startup():
    if DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
        logger.info("SQLite mode: tables created automatically")

    if WATCHLIST_POLLER_ENABLED:
        poller.activate()
    else:
        logger.warning("WATCHLIST_POLLER_ENABLED is off, watchlist poller will not start")


@app.on_event("shutdown")
async def on_shutdown():
    poller.deactivate()


@app.get("/health")
def health_check() -> dict:
    return {"status": "ok", "watchlist_poller": poller.is_active}
