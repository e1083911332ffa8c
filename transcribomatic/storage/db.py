"""
Database connection management.

SQLite connections are short-lived: one per repository operation.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

# Seconds to wait on a locked database before failing
BUSY_TIMEOUT = 5.0


def get_connection(db_path: str = "transcribomatic.db") -> sqlite3.Connection:
    """Open a SQLite connection, creating the parent directory if needed.

    Rows are returned as ``sqlite3.Row`` so columns can be read by name.
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def connection(db_path: str) -> Iterator[sqlite3.Connection]:
    """Yield a connection that commits on success and rolls back on error."""
    conn = get_connection(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
