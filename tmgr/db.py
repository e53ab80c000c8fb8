from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from .models import Note, Task, TaskStatus, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS tasks (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    description TEXT NOT NULL,
    status      TEXT NOT NULL DEFAULT 'pending', -- 'pending' | 'done'
    created_at  TEXT DEFAULT CURRENT_TIMESTAMP,
    due_date    TEXT NULL -- YYYY-MM-DD HH:MM:SS (nullable)
);

CREATE TABLE IF NOT EXISTS notes (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    content     TEXT NOT NULL,
    created_at  TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_tasks_status_due ON tasks(status, due_date);
"""


class StoreError(RuntimeError):
    """Unrecoverable storage failure (open, directory creation, query)."""


def _parse_created(raw: object, kind: str, row_id: int) -> datetime:
    try:
        return parse_timestamp(str(raw))
    except ValueError as e:
        raise StoreError(f"corrupt created_at '{raw}' on {kind} {row_id}") from e


def _row_to_task(row: sqlite3.Row) -> Task:
    task_id = int(row["id"])
    due_text = row["due_date"]
    due: Optional[datetime] = None
    bad_due: Optional[str] = None
    if due_text is not None:
        try:
            due = parse_timestamp(due_text)
        except ValueError:
            logger.debug("Could not parse due date '%s' from DB for task ID %d", due_text, task_id)
            bad_due = str(due_text)
    return Task(
        id=task_id,
        description=str(row["description"]),
        status=TaskStatus(row["status"]),
        created_at=_parse_created(row["created_at"], "task", task_id),
        due=due,
        bad_due=bad_due,
    )


def _row_to_note(row: sqlite3.Row) -> Note:
    note_id = int(row["id"])
    return Note(
        id=note_id,
        content=str(row["content"]),
        created_at=_parse_created(row["created_at"], "note", note_id),
    )


def _require_text(value: str, name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{name} is required")
    return value.strip()


class Store:
    """
    SQLite store for tasks and notes.

    Holds one connection between open() and close(); use it as a context
    manager so the connection is released on every exit path.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> "Store":
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> "Store":
        if self._conn is not None:
            return self
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(
                f"failed to create database directory '{self.db_path.parent}': {e}"
            ) from e
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise StoreError(f"failed to open database '{self.db_path}': {e}") from e
        conn.row_factory = sqlite3.Row
        self._conn = conn
        try:
            conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            self.close()
            raise StoreError(f"failed to create tables in '{self.db_path}': {e}") from e
        logger.debug("Opened database %s", self.db_path)
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("Closed database %s", self.db_path)

    @contextmanager
    def _op(self, what: str) -> Iterator[sqlite3.Connection]:
        """Run one operation; commit on success, roll back and wrap errors."""
        if self._conn is None:
            raise StoreError(f"failed to {what}: database is not open")
        conn = self._conn
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"failed to {what}: {e}") from e

    # ---- tasks ----

    def add_task(
        self,
        description: str,
        *,
        due: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
    ) -> int:
        description = _require_text(description, "description")
        created = format_timestamp(created_at or datetime.now())
        due_text = format_timestamp(due) if due else None

        with self._op(f"add task '{description}'") as conn:
            cur = conn.execute(
                "INSERT INTO tasks (description, status, created_at, due_date) VALUES (?, ?, ?, ?)",
                (description, TaskStatus.PENDING.value, created, due_text),
            )
            task_id = int(cur.lastrowid)
        logger.debug("Task added id=%s due=%s", task_id, due_text)
        return task_id

    def get_task(self, task_id: int) -> Optional[Task]:
        with self._op(f"get task {task_id}") as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(row) if row else None

    def list_tasks(self, status: Optional[TaskStatus] = None) -> list[Task]:
        with self._op("list tasks") as conn:
            if status:
                rows = conn.execute(
                    "SELECT * FROM tasks WHERE status = ? ORDER BY id ASC", (status.value,)
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM tasks ORDER BY id ASC").fetchall()
        return [_row_to_task(r) for r in rows]

    def pending_tasks_with_due(self) -> list[Task]:
        """Tasks that are not done and have a due date, soonest first."""
        with self._op("query tasks for checking") as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM tasks
                WHERE status != ?
                  AND due_date IS NOT NULL
                ORDER BY due_date ASC, id ASC
                """,
                (TaskStatus.DONE.value,),
            ).fetchall()
        return [_row_to_task(r) for r in rows]

    def count_tasks(self) -> int:
        with self._op("count tasks") as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
        return int(n)

    def mark_done(self, task_id: int) -> bool:
        with self._op(f"mark task {task_id} as done") as conn:
            cur = conn.execute(
                "UPDATE tasks SET status = ? WHERE id = ?",
                (TaskStatus.DONE.value, task_id),
            )
            return cur.rowcount > 0

    def remove_task(self, task_id: int) -> bool:
        with self._op(f"remove task {task_id}") as conn:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            return cur.rowcount > 0

    # ---- notes ----

    def add_note(self, content: str, *, created_at: Optional[datetime] = None) -> int:
        content = _require_text(content, "content")
        created = format_timestamp(created_at or datetime.now())
        with self._op("add note") as conn:
            cur = conn.execute(
                "INSERT INTO notes (content, created_at) VALUES (?, ?)", (content, created)
            )
            note_id = int(cur.lastrowid)
        logger.debug("Note added id=%s", note_id)
        return note_id

    def list_notes(self) -> list[Note]:
        with self._op("list notes") as conn:
            rows = conn.execute("SELECT * FROM notes ORDER BY id ASC").fetchall()
        return [_row_to_note(r) for r in rows]

    def count_notes(self) -> int:
        with self._op("count notes") as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM notes").fetchone()
        return int(n)

    def remove_note(self, note_id: int) -> bool:
        with self._op(f"remove note {note_id}") as conn:
            cur = conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
            return cur.rowcount > 0

    # ---- backup ----

    def export_json(self) -> dict:
        with self._op("export") as conn:
            tasks = conn.execute("SELECT * FROM tasks ORDER BY id ASC").fetchall()
            notes = conn.execute("SELECT * FROM notes ORDER BY id ASC").fetchall()

        # Raw column values, so unreadable due dates survive a round trip.
        return {
            "tasks": [dict(r) for r in tasks],
            "notes": [dict(r) for r in notes],
        }

    def import_json(self, data: dict) -> None:
        """Replace every task and note with the ones in ``data`` (ids kept)."""
        now = format_timestamp(datetime.now())
        tasks = data.get("tasks", [])
        notes = data.get("notes", [])
        for t in tasks:
            status = t.get("status", TaskStatus.PENDING.value)
            TaskStatus(status)  # ValueError on unknown status
            _require_text(t.get("description", ""), f"description of task {t.get('id')}")
            parse_timestamp(t.get("created_at") or now)
        for n in notes:
            _require_text(n.get("content", ""), f"content of note {n.get('id')}")
            parse_timestamp(n.get("created_at") or now)

        with self._op("import") as conn:
            conn.execute("DELETE FROM tasks")
            conn.execute("DELETE FROM notes")

            for t in tasks:
                conn.execute(
                    """
                    INSERT INTO tasks (id, description, status, created_at, due_date)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        int(t["id"]),
                        t["description"],
                        t.get("status", TaskStatus.PENDING.value),
                        t.get("created_at") or now,
                        t.get("due_date"),
                    ),
                )

            for n in notes:
                conn.execute(
                    "INSERT INTO notes (id, content, created_at) VALUES (?, ?, ?)",
                    (int(n["id"]), n["content"], n.get("created_at") or now),
                )
        logger.info("Imported %d tasks and %d notes", len(tasks), len(notes))
