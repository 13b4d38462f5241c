"""Routes that expose operational observability data."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, func, select

from .. import __version__
from ..config import get_settings
from ..database import get_session
from ..models import DriverProfile
from ..observability import metrics_registry

router = APIRouter(prefix="/api", tags=["observability"])


def _database_status(session: Session) -> dict[str, object]:
    """Run a lightweight database check and count the known drivers."""

    try:
        drivers = session.exec(select(func.count()).select_from(DriverProfile)).one()
    except SQLAlchemyError:
        return {"ok": False, "drivers": None}
    return {"ok": True, "drivers": drivers}


@router.get("/metrics")
def read_metrics() -> dict[str, object]:
    """Return the current request and sync metrics snapshot."""

    return metrics_registry.snapshot()


@router.get("/status")
def read_status(session: Session = Depends(get_session)) -> dict[str, object]:
    """Return an aggregated operational status payload."""

    settings = get_settings()
    return {
        "app": {"version": __version__},
        "database": _database_status(session),
        "sync": {
            "persist_max_attempts": settings.persist_max_attempts,
            "persist_timeout_s": settings.persist_timeout_s,
            "persist_workers": settings.persist_workers,
            "approved_reupload_policy": settings.approved_reupload_policy,
        },
        "metrics": metrics_registry.snapshot(),
    }


__all__ = ["router"]
