"""Request and aggregate-sync metrics collection utilities."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from threading import Lock
from time import perf_counter
from typing import Dict

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp


@dataclass
class DurationStats:
    """Count and min/avg/max of a series of durations in milliseconds."""

    count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float | None = None
    max_duration_ms: float | None = None

    def observe(self, duration_seconds: float) -> None:
        duration_ms = max(duration_seconds * 1000.0, 0.0)
        self.count += 1
        self.total_duration_ms += duration_ms
        if self.min_duration_ms is None or duration_ms < self.min_duration_ms:
            self.min_duration_ms = duration_ms
        if self.max_duration_ms is None or duration_ms > self.max_duration_ms:
            self.max_duration_ms = duration_ms

    def as_dict(self) -> Dict[str, float | int | None]:
        return {
            "count": self.count,
            "avg_duration_ms": self.total_duration_ms / (self.count or 1),
            "min_duration_ms": self.min_duration_ms,
            "max_duration_ms": self.max_duration_ms,
        }


class MetricsRegistry:
    """In-memory collector for HTTP traffic and canonical-write outcomes."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.reset()

    def reset(self) -> None:
        """Reset all counters (useful for tests)."""

        with self._lock:
            self._in_flight = 0
            self._requests_total = 0
            self._status_families: Counter[str] = Counter()
            self._routes: Dict[str, DurationStats] = {}
            self._sync_outcomes: Counter[str] = Counter()
            self._persist = DurationStats()

    def request_started(self) -> None:
        with self._lock:
            self._in_flight += 1

    def request_finished(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_seconds: float,
    ) -> None:
        """Record one completed request under ``METHOD /route/template``."""

        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)
            self._requests_total += 1
            self._status_families[f"{status_code // 100}xx"] += 1
            stats = self._routes.setdefault(f"{method.upper()} {path}", DurationStats())
            stats.observe(duration_seconds)

    def record_sync(self, outcome: str, duration_seconds: float | None = None) -> None:
        """Count one persist outcome; successful writes also record their latency.

        Outcomes are ``persisted``, ``stale_write``, ``timeout``,
        ``store_error`` and ``exhausted``.
        """

        with self._lock:
            self._sync_outcomes[outcome] += 1
            if duration_seconds is not None:
                self._persist.observe(duration_seconds)

    def snapshot(self) -> Dict[str, object]:
        """Return an immutable view of the current metrics."""

        with self._lock:
            return {
                "requests_total": self._requests_total,
                "in_flight": self._in_flight,
                "status_codes": dict(self._status_families),
                "routes": {key: stats.as_dict() for key, stats in self._routes.items()},
                "sync": dict(self._sync_outcomes),
                "persist": self._persist.as_dict(),
            }


def _route_template(request: Request) -> str:
    """Return the matched route path so per-driver URLs share one bucket."""

    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records request metrics."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        registry: MetricsRegistry | None = None,
    ) -> None:
        super().__init__(app)
        self._registry = registry or metrics_registry

    async def dispatch(self, request: Request, call_next):
        start = perf_counter()
        self._registry.request_started()
        try:
            response = await call_next(request)
        except Exception:  # pragma: no cover - re-raise after recording metrics
            self._registry.request_finished(
                request.method, _route_template(request), 500, perf_counter() - start
            )
            raise
        self._registry.request_finished(
            request.method,
            _route_template(request),
            getattr(response, "status_code", 200),
            perf_counter() - start,
        )
        return response


metrics_registry = MetricsRegistry()

__all__ = [
    "DurationStats",
    "MetricsRegistry",
    "RequestMetricsMiddleware",
    "metrics_registry",
]
