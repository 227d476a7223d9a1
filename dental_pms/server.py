"""FastAPI server for the dental PMS adapter.

Run with:
    uv run uvicorn dental_pms.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dental_pms.api.routes import error_status, router
from dental_pms.api.schemas import ErrorResponse
from dental_pms.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT
from dental_pms.errors import PMSError
from dental_pms.offices import OfficeDirectory
from dental_pms.services.metrics import metrics

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Load the office directory once; close adapters and flush metrics on exit."""
    if getattr(application.state, "offices", None) is None:
        application.state.offices = OfficeDirectory.from_config()
    logger.info("Serving %d offices.", len(application.state.offices))
    yield
    await application.state.offices.aclose()
    metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Dental PMS Adapter",
    description=(
        "Multi-tenant practice management integration: patients, "
        "providers, locations, availability and appointments."
    ),
    version="2.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (``X-Request-ID``) for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Adapter errors → HTTP ────────────────────────────────────────────
@app.exception_handler(PMSError)
async def pms_error_handler(request: Request, exc: PMSError) -> JSONResponse:
    """Answer with the error's user-facing message; details stay in the log."""
    request_id = getattr(request.state, "request_id", "?")
    status = error_status(exc)
    logger.warning("[%s] %s: %s", request_id, type(exc).__name__, exc.message)
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(
            detail=exc.user_message, error_type=type(exc).__name__,
        ).model_dump(by_alias=True),
    )


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Dental PMS Adapter",
        "version": "2.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting dental PMS API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "dental_pms.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
