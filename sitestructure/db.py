"""SQLite connection provider."""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


def connect(db_path: Path | str, *, timeout: float = 5.0) -> sqlite3.Connection:
    """Open a connection suitable for sharing behind a lock across threads.

    The connection is closed again if configuring it fails.
    """

    path = str(db_path)
    is_memory = path == MEMORY_PATH
    if not is_memory:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, timeout=timeout, check_same_thread=False)
    try:
        conn.row_factory = sqlite3.Row
        if not is_memory:
            conn.execute("PRAGMA journal_mode=WAL")
    except sqlite3.Error:
        conn.close()
        raise
    logger.debug("Opened structure database %s", path)
    return conn


__all__ = ["MEMORY_PATH", "connect"]
