import logging
import sys

from .config import LOG_LEVEL

_CONFIGURED = False


def setup_logging(level=None):
    """
    Configure root logging once.
    Safe to call multiple times (app lifespan, scripts, tests).
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    root = logging.getLogger()
    if root.handlers:
        # Someone (pytest, uvicorn) already installed handlers
        _CONFIGURED = True
        return

    logging.basicConfig(
        level=level or getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )
    _CONFIGURED = True
