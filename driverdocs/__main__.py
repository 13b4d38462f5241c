"""Command-line entrypoint for running the DriverDocs service."""

from __future__ import annotations

import uvicorn

from .config import get_settings
from .utils.logging import configure_logging


def main() -> None:
    """Serve the API with the configured host, port and log levels."""

    settings = get_settings()
    logger = configure_logging(settings.engine_log_level)
    logger.info(
        "starting DriverDocs on %s:%s (persist attempts=%s, timeout=%ss, reupload=%s)",
        settings.host,
        settings.port,
        settings.persist_max_attempts,
        settings.persist_timeout_s,
        settings.approved_reupload_policy,
    )
    uvicorn.run(
        "driverdocs.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
