"""SQLite key-value storage for local client state."""

import sqlite3
from typing import Optional


def init_db(db_path: str) -> sqlite3.Connection:
    """
    Initialize the database and create tables if they don't exist.

    Args:
        db_path: Path to the SQLite database file (":memory:" works too).

    Returns:
        A connection to the database.
    """
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)
    conn.commit()
    return conn


def get_meta(conn: sqlite3.Connection, key: str) -> Optional[str]:
    """
    Get a metadata value from the database.

    Args:
        conn: Database connection.
        key: Metadata key.

    Returns:
        The metadata value, or None if not found.
    """
    cursor = conn.execute("SELECT value FROM meta WHERE key = ?", (key,))
    row = cursor.fetchone()
    return row[0] if row else None


def set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    """
    Set a metadata value in the database.

    Args:
        conn: Database connection.
        key: Metadata key.
        value: Metadata value.
    """
    conn.execute(
        "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
        (key, value)
    )
    conn.commit()


def delete_meta(conn: sqlite3.Connection, key: str) -> None:
    """
    Remove a metadata value from the database.

    Args:
        conn: Database connection.
        key: Metadata key. Missing keys are ignored.
    """
    conn.execute("DELETE FROM meta WHERE key = ?", (key,))
    conn.commit()
