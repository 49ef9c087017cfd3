from __future__ import annotations
import logging
import logging.handlers
import os
from typing import Optional

from .settings import APP_DIR

LOG_DIR = APP_DIR / "logs"
LOG_FILE = LOG_DIR / "bdyn.log"

_DEF_FMT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

def configure_logging(level: Optional[int] = None) -> None:
    """
    Root logging for the desktop app: rotating file under APP_DIR plus stderr.
    BDYN_LOG_LEVEL (e.g. "DEBUG") overrides the default INFO level.
    """
    logger = logging.getLogger()
    if logger.handlers:
        return
    if level is None:
        level = logging.getLevelName(os.getenv("BDYN_LOG_LEVEL", "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    fh = logging.handlers.RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
    fh.setFormatter(logging.Formatter(_DEF_FMT))
    fh.setLevel(level)

    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter(_DEF_FMT))
    ch.setLevel(level)

    logger.addHandler(fh)
    logger.addHandler(ch)

    # One HTTP request per captured event with the REST sink; keep the pool chatter out.
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
