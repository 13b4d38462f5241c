"""Test configuration for DriverDocs."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Generator

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from driverdocs.config import reset_settings_cache  # noqa: E402
from driverdocs.database import init_db, reset_database_state  # noqa: E402
from driverdocs.observability import metrics_registry  # noqa: E402
from driverdocs.services.store import SQLDocumentStore  # noqa: E402
from driverdocs.services.verification import reset_verification_service  # noqa: E402


def _reset_state() -> None:
    reset_verification_service()
    reset_settings_cache()
    reset_database_state()
    metrics_registry.reset()


@pytest.fixture(autouse=True)
def _isolate_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Generator[None, None, None]:
    """Provide isolated configuration for each test."""

    db_path = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("PERSIST_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("PERSIST_TIMEOUT_S", "5")
    monkeypatch.delenv("APPROVED_REUPLOAD_POLICY", raising=False)
    _reset_state()
    yield
    _reset_state()


@pytest.fixture()
def store() -> SQLDocumentStore:
    """Return a SQL store bound to the per-test database with tables created."""

    init_db()
    return SQLDocumentStore()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    """Return a test client for the FastAPI application."""

    from driverdocs.main import app

    with TestClient(app) as test_client:
        yield test_client
