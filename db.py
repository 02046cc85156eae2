"""SQLite helpers for the embedded local backend: schema initialisation and connection factory."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

ENVIRONMENTS_TABLE = "environments"
SETTINGS_TABLE = "app_settings"


def init(db_path: Path) -> None:
    """Create the database file and tables on first use (idempotent)."""
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with connect(db_path) as conn:
        conn.executescript(f"""
            CREATE TABLE IF NOT EXISTS {ENVIRONMENTS_TABLE} (
                uuid       TEXT PRIMARY KEY,
                body       TEXT NOT NULL,
                updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            );

            CREATE TABLE IF NOT EXISTS {SETTINGS_TABLE} (
                key   TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
        """)


def _raw_connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def connect(db_path: Path) -> Generator[sqlite3.Connection, None, None]:
    """
    Context manager that yields a connection, commits on success,
    rolls back on exception, and always closes.

    Usage::

        with db.connect(path) as conn:
            conn.execute("INSERT INTO environments ...")
    """
    conn = _raw_connect(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
