"""Tests for startup behaviour defined in ``driverdocs.main``."""

from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy import inspect

from driverdocs import database
from driverdocs.config import reset_settings_cache
from driverdocs.main import app


def test_startup_creates_driver_tables(monkeypatch, tmp_path):
    """Entering the app lifespan should create every table the engine writes to."""

    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'startup.db'}")
    reset_settings_cache()
    database.reset_database_state()

    with TestClient(app) as client:
        assert client.get("/api/health").status_code == 200
        tables = set(inspect(database.get_engine()).get_table_names())

    assert {
        "driver_profiles",
        "verification_requests",
        "driver_listings",
        "document_audit_entries",
    } <= tables

    database.reset_database_state()
    reset_settings_cache()


def test_app_exposes_driver_routes():
    paths = {route.path for route in app.routes}

    assert "/api/drivers/{driver_id}/documents" in paths
    assert "/api/drivers/{driver_id}/documents/{document_type}/decision" in paths
    assert "/api/drivers/{driver_id}/documents/{document_type}/upload" in paths
    assert "/api/drivers/{driver_id}/resync" in paths
    assert "/api/drivers/resync" in paths
    assert "/api/drivers/{driver_id}/audit" in paths
