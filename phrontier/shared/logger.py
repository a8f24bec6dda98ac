"""
Centralized logging for the Phrontier backend.

Usage:
    from phrontier.shared.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Server starting on port %d", port)
    logger.warning("Upload to bucket %s failed: %s", bucket, err)
"""

import logging
import os
import sys

_configured = False


def setup_logging(level: str | None = None) -> None:
    """Configure root logging for the backend.

    Call once at startup (main.py). Subsequent calls are no-ops.
    The level defaults to ``PHRONTIER_LOG_LEVEL`` (or INFO).
    """
    global _configured
    if _configured:
        return

    level = level or os.environ.get("PHRONTIER_LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    # botocore is chatty at INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger scoped to the caller's module.

    Args:
        name: Module name (typically ``__name__``).
    """
    return logging.getLogger(name)
