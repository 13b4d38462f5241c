from __future__ import annotations

import logging
import os
import sys

TRACE_LEVEL = 5
logging.addLevelName(TRACE_LEVEL, "TRACE")


def trace(self: logging.Logger, msg: str, *args, **kwargs) -> None:  # type: ignore[override]
    if self.isEnabledFor(TRACE_LEVEL):
        self._log(TRACE_LEVEL, msg, args, **kwargs)


logging.Logger.trace = trace  # type: ignore[attr-defined]

_CONFIGURED = False

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s] | %(message)s"


def configure_logging(default_level: str = "INFO") -> logging.Logger:
    """Configure a stdout handler once and return the ``driverdocs`` logger.

    ``ENGINE_LOG_LEVEL`` wins over ``default_level``; ``TRACE`` enables the
    per-field merge messages.
    """

    global _CONFIGURED
    logger = logging.getLogger("driverdocs")
    level_name = os.getenv("ENGINE_LOG_LEVEL", default_level).strip().upper()
    level = TRACE_LEVEL if level_name == "TRACE" else getattr(logging, level_name, logging.INFO)
    if not _CONFIGURED:
        from ..middleware.request_context import RequestIdLogFilter

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(RequestIdLogFilter())
        logger.addHandler(handler)
        logger.propagate = False
        _CONFIGURED = True
    logger.setLevel(level)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child of the configured ``driverdocs`` logger."""

    return configure_logging().getChild(name)


__all__ = ["LOG_FORMAT", "TRACE_LEVEL", "configure_logging", "get_logger"]
