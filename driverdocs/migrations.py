"""Lightweight schema migration helpers for the DriverDocs service."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError


MigrationFunc = Callable[[Engine], None]


def _add_column_if_missing(engine: Engine, table: str, column: str, ddl: str) -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        try:
            columns = inspector.get_columns(table)
        except NoSuchTableError:
            return

        if any(existing["name"] == column for existing in columns):
            return

        connection.execute(text(f"ALTER TABLE {table} ADD COLUMN {ddl}"))


def _ensure_driver_profile_version(engine: Engine) -> None:
    """Add the optimistic-lock ``version`` column to profiles created before it existed."""

    _add_column_if_missing(
        engine, "driver_profiles", "version", "version INTEGER NOT NULL DEFAULT 0"
    )


def _ensure_listing_can_start_working(engine: Engine) -> None:
    """Add the ``can_start_working`` flag to ``driver_listings`` when absent."""

    _add_column_if_missing(
        engine,
        "driver_listings",
        "can_start_working",
        "can_start_working BOOLEAN NOT NULL DEFAULT 0",
    )


_MIGRATIONS: tuple[MigrationFunc, ...] = (
    _ensure_driver_profile_version,
    _ensure_listing_can_start_working,
)


def run_migrations(engine: Engine, migrations: Iterable[MigrationFunc] | None = None) -> None:
    """Execute idempotent schema migrations for the provided engine."""

    for migration in migrations or _MIGRATIONS:
        migration(engine)
