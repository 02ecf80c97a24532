# FILE: medstore/core/logging.py
from __future__ import annotations

import logging
import sys

from medstore.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """
    Attach one stream handler to the ``medstore`` logger.
    Safe to call more than once (uvicorn reload, tests).
    """
    global _configured

    root = logging.getLogger("medstore")
    root.setLevel(level or settings.LOG_LEVEL)

    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        _configured = True

    return root
