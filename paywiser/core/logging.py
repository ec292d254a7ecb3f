"""Process-wide logging setup."""

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging once at process start.

    Args:
        level: Level name; defaults to PAYWISER_LOG_LEVEL or INFO
    """
    level_name = (level or os.environ.get("PAYWISER_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
    # websockets logs every frame at DEBUG
    logging.getLogger("websockets").setLevel(logging.WARNING)
