"""
Database connection management.

Provides the SQLite connection backing the usage log.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "ai_usage_meter.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open a SQLite connection to the usage log database.

    Parent directories are created on demand. WAL journaling lets the
    worker and the CLI read while a request is writing.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA journal_mode=WAL")
    return conn
