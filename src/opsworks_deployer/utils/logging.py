"""Logging helpers."""

from __future__ import annotations

import logging
from typing import Optional

_LOGGING_CONFIGURED = False

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    global _LOGGING_CONFIGURED
    level = logging.DEBUG if verbose else logging.WARNING
    if not _LOGGING_CONFIGURED:
        logging.basicConfig(level=level, format=LOG_FORMAT)
        _LOGGING_CONFIGURED = True
    else:
        logging.getLogger().setLevel(level)
    # botocore/urllib3 connection chatter is not useful even in verbose mode
    for name in ("botocore", "urllib3.connectionpool"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not _LOGGING_CONFIGURED:
        configure_logging()
    return logging.getLogger(name)
