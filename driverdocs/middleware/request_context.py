"""Request identifiers shared by the middleware, log records and audit entries."""

from __future__ import annotations

import contextvars
import logging
import re
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

_REQUEST_ID: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

LOGGER = logging.getLogger("driverdocs.request")


def get_request_id(default: str | None = None) -> str | None:
    """Return the request identifier stored in the current context."""

    return _REQUEST_ID.get(default)


def _normalise_request_id(value: str | None) -> str:
    """Return the caller's identifier when it is safe, otherwise a fresh one."""

    if value:
        candidate = value.strip()
        if _REQUEST_ID_PATTERN.match(candidate):
            return candidate
    return uuid.uuid4().hex


class RequestIdLogFilter(logging.Filter):
    """Expose the current request id as ``record.request_id`` ("-" outside requests)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id("-")
        return True


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of a request and echo it in a header.

    Audit entries written while handling the request carry the same id, so an
    admin decision can be traced from the HTTP response to the stored record.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID") -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next):
        request_id = _normalise_request_id(request.headers.get(self.header_name))
        request.state.request_id = request_id
        token = _REQUEST_ID.set(request_id)
        try:
            LOGGER.debug("%s %s", request.method, request.url.path)
            response = await call_next(request)
        finally:
            _REQUEST_ID.reset(token)
        response.headers[self.header_name] = request_id
        return response


__all__ = ["RequestIdLogFilter", "RequestIdMiddleware", "get_request_id"]
