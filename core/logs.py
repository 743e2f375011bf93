from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from core.settings import SYNC

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_sync_logger(name: str = "fieldsync.sync") -> logging.Logger:
    """Return a logger writing to the rotating sync log, configured once."""

    logger = logging.getLogger(name)
    root = logging.getLogger("fieldsync")
    if not root.handlers:
        try:
            Path(SYNC.log_path).parent.mkdir(parents=True, exist_ok=True)
            handler: logging.Handler = RotatingFileHandler(
                SYNC.log_path,
                maxBytes=SYNC.log_max_bytes,
                backupCount=SYNC.log_backup_count,
                encoding="utf-8",
            )
        except OSError:
            handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
        root.setLevel(getattr(logging, SYNC.log_level.upper(), logging.INFO))
    return logger


__all__ = ["get_sync_logger"]
