#!/usr/bin/env python3
"""Development launcher for the DriverDocs API."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

import uvicorn

APP_PATH = "driverdocs.main:app"
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from driverdocs.config import get_settings  # noqa: E402


def parse_args() -> argparse.Namespace:
    """Parse command line arguments for the launcher script."""

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--host",
        default=get_settings().host,
        help="Host interface for the DriverDocs server.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=get_settings().port,
        help="Port for the DriverDocs server.",
    )
    parser.add_argument(
        "--log-level",
        default=get_settings().log_level,
        help="Log level passed to Uvicorn.",
    )
    parser.add_argument(
        "--reload",
        dest="reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() in {"1", "true", "yes"},
        help="Enable autoreload (default: off).",
    )
    parser.add_argument(
        "--no-reload",
        dest="reload",
        action="store_false",
        help="Disable autoreload.",
    )
    return parser.parse_args()


def main() -> None:
    """Launch a Uvicorn server for the DriverDocs API."""

    args = parse_args()

    reload_dirs: list[str] | None = None
    if args.reload:
        reload_dirs = [str(PROJECT_ROOT / "driverdocs")]

    uvicorn.run(
        APP_PATH,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        reload=args.reload,
        reload_dirs=reload_dirs,
    )


if __name__ == "__main__":
    main()
