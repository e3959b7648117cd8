"""Repository primitives for rendering task state."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import sqlite3
import threading

from bookrender.models import Task, TaskState
from bookrender.tasks.schema import apply_runtime_pragmas, ensure_schema


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StorageError(Exception):
    """Task row could not be read or written."""

    operation: str
    message: str

    def __str__(self) -> str:
        return f"{self.operation} failed: {self.message}"


class TaskRepository:
    """SQLite-backed task table owning the PENDING -> FINISHED/FAILED transitions."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._lock = threading.Lock()
        try:
            self._connection = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            apply_runtime_pragmas(self._connection)
            ensure_schema(self._connection)
        except sqlite3.Error as exc:
            raise StorageError("open", f"{exc} (db={self._db_path})") from exc

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def __enter__(self) -> "TaskRepository":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def create(self) -> int:
        try:
            with self._lock, self._connection:
                cursor = self._connection.execute(
                    """
                    INSERT INTO book_rendering_tasks (state, disposition, content_key)
                    VALUES (?, NULL, NULL)
                    """,
                    (TaskState.PENDING.value,),
                )
        except sqlite3.Error as exc:
            raise StorageError("create", str(exc)) from exc

        task_id = int(cursor.lastrowid)
        logger.debug("Created rendering task #%s", task_id)
        return task_id

    def mark_finished(self, task_id: int, content_key: str, disposition: str | None) -> None:
        self._change_state(task_id, TaskState.FINISHED, content_key, disposition)

    def mark_failed(self, task_id: int) -> None:
        self._change_state(task_id, TaskState.FAILED, None, None)

    def _change_state(
        self,
        task_id: int,
        state: TaskState,
        content_key: str | None,
        disposition: str | None,
    ) -> None:
        try:
            with self._lock, self._connection:
                self._connection.execute(
                    """
                    UPDATE book_rendering_tasks
                    SET state = ?, content_key = ?, disposition = ?
                    WHERE id = ?
                    """,
                    (state.value, content_key, disposition, task_id),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"mark {state.value} #{task_id}", str(exc)) from exc

        logger.debug("Task #%s is now %s", task_id, state.value)

    def get(self, task_id: int) -> Task | None:
        try:
            with self._lock:
                row = self._connection.execute(
                    """
                    SELECT id, timestamp, state, disposition, content_key
                    FROM book_rendering_tasks
                    WHERE id = ?
                    """,
                    (task_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"get #{task_id}", str(exc)) from exc

        if row is None:
            return None
        return Task(
            id=int(row["id"]),
            timestamp=row["timestamp"],
            state=row["state"],
            disposition=row["disposition"],
            content_key=row["content_key"],
        )

    def get_content_key(self, task_id: int) -> str | None:
        try:
            with self._lock:
                row = self._connection.execute(
                    "SELECT content_key FROM book_rendering_tasks WHERE id = ?",
                    (task_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"get content key #{task_id}", str(exc)) from exc

        if row is None:
            return None
        return row["content_key"]
