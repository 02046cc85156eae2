"""Logging setup: one stderr handler on the root logger, installed once at startup."""

import logging
import sys

LOG_FORMAT = "[mockdock] %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level)

    # Guard against double-adding handlers when called twice (tests, reloads)
    for handler in root.handlers:
        if getattr(handler, "_mockdock", False):
            return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._mockdock = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # The engine child shares our stderr; keep access logs out of its way.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
