"""
moodify.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn moodify.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from moodify.api.deps import get_engine  # noqa: E402
from moodify.api.routes.users import router as users_router  # noqa: E402
from moodify.api.routes.xp import router as xp_router  # noqa: E402
from moodify.database.engine import init_db, run_db  # noqa: E402
from moodify.exceptions import InvalidUserError, StorageError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from ``CORS_ALLOW_ORIGINS`` (comma-separated)."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]
    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle: warm the DB engine and ensure tables."""
    engine = app.dependency_overrides.get(get_engine, get_engine)()
    await run_db(init_db, engine)
    logger.info("Moodify API started, engine ready (%s)", engine.url.database)
    yield
    logger.info("Moodify API shutting down")


app = FastAPI(
    title="Moodify XP Ledger API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage failure on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=503, content=exc.to_dict())


@app.exception_handler(InvalidUserError)
async def invalid_user_handler(request: Request, exc: InvalidUserError):
    return JSONResponse(status_code=401, content=exc.to_dict())


# Mount routers
app.include_router(users_router, prefix="/api")
app.include_router(xp_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
