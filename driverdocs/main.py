"""DriverDocs service entrypoint."""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import Iterable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import get_settings
from .database import init_db
from .middleware import RequestIdMiddleware
from .observability import RequestMetricsMiddleware
from .routers import drivers, health, observability
from .services.verification import reset_verification_service
from .utils.logging import configure_logging

settings = get_settings()
logger = logging.getLogger("uvicorn.error")
configure_logging(settings.engine_log_level)

cors_allow_origins = list(settings.cors_allow_origins)
allow_credentials = True
if "*" in cors_allow_origins:
    cors_allow_origins = ["*"]
    allow_credentials = False

_cors_origin_pattern = (
    re.compile(settings.cors_allow_origin_regex)
    if settings.cors_allow_origin_regex
    else None
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup and release the persist worker pool on shutdown."""

    init_db()
    yield
    reset_verification_service()


app = FastAPI(title="DriverDocs", version=__version__, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_origin_regex=settings.cors_allow_origin_regex,
)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(RequestMetricsMiddleware)


ROUTERS: Iterable = (
    drivers.router,
    health.router,
    observability.router,
)

for router in ROUTERS:
    app.include_router(router)


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Return the CORS headers CORSMiddleware would have added for ``origin``.

    Responses built by the server-error handler bypass CORSMiddleware.
    """

    if not origin:
        return {}
    if cors_allow_origins == ["*"]:
        return {"Access-Control-Allow-Origin": "*", "Vary": "Origin"}
    allowed = origin in cors_allow_origins or bool(
        _cors_origin_pattern and _cors_origin_pattern.fullmatch(origin)
    )
    if not allowed:
        return {}
    headers = {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
    if allow_credentials:
        headers["Access-Control-Allow-Credentials"] = "true"
    return headers


@app.exception_handler(Exception)
async def handle_unexpected_exception(
    request: Request, exc: Exception
) -> JSONResponse:
    """Ensure unexpected exceptions return a JSON payload."""

    logger.exception(
        "Unhandled exception while processing %s %s", request.method, request.url.path
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"},
        headers=_cors_headers(request.headers.get("origin")) or None,
    )


__all__ = ["app"]
