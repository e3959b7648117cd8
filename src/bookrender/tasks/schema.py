"""SQLite schema and pragmas for rendering task persistence."""

from __future__ import annotations

import sqlite3


PRAGMA_BUSY_TIMEOUT_MS = 5000
MAX_STATE_LENGTH = 32
MAX_DISPOSITION_LENGTH = 255
MAX_CONTENT_KEY_LENGTH = 255


def apply_runtime_pragmas(connection: sqlite3.Connection) -> None:
    """Apply runtime pragmas so readers never block the background writers."""

    connection.execute("PRAGMA journal_mode=WAL;")
    connection.execute(f"PRAGMA busy_timeout={PRAGMA_BUSY_TIMEOUT_MS};")
    connection.execute("PRAGMA synchronous=NORMAL;")


def ensure_schema(connection: sqlite3.Connection) -> None:
    """Create the task table and its index if missing."""

    connection.executescript(
        f"""
        CREATE TABLE IF NOT EXISTS book_rendering_tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            state TEXT NOT NULL CHECK(length(state) <= {MAX_STATE_LENGTH}),
            disposition TEXT CHECK(
                disposition IS NULL OR length(disposition) <= {MAX_DISPOSITION_LENGTH}
            ),
            content_key TEXT CHECK(
                content_key IS NULL OR length(content_key) <= {MAX_CONTENT_KEY_LENGTH}
            )
        );

        CREATE INDEX IF NOT EXISTS idx_book_rendering_tasks_state
        ON book_rendering_tasks(state);
        """
    )
