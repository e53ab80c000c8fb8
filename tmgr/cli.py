from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import default_db_path, load_settings
from .db import Store, StoreError
from .duration import resolve_due
from .logging_setup import setup_logging
from .models import Note, Task, TaskStatus, format_timestamp
from .schedule import check, is_overdue, render_check

logger = logging.getLogger(__name__)

__version__ = "0.1.0"

LIST_DUE_FORMAT = "%a, %d %b %Y %H:%M"
RULE = "-----------"


def _now() -> datetime:
    return datetime.now()


def _db_path_from_args(ns: argparse.Namespace) -> Path:
    if getattr(ns, "db", None):
        return Path(ns.db).expanduser().resolve()
    return default_db_path()


def _parse_id(raw: str, kind: str) -> Optional[int]:
    try:
        return int(raw)
    except ValueError:
        print(f"Invalid {kind} ID provided: '{raw}'. Please provide a number.", file=sys.stderr)
        return None


def _format_task(t: Task, now: datetime) -> str:
    if t.bad_due is not None:
        due = "Invalid Date Format in DB"
    elif t.due is not None:
        due = t.due.strftime(LIST_DUE_FORMAT)
    else:
        due = "N/A"
    marker = "[DONE]" if t.is_done else f"[{t.status.value}]"
    overdue = " [OVERDUE!]" if is_overdue(t, now) else ""
    return f"{t.id}. {marker:<9} {t.description} (Due: {due}){overdue}"


def _format_note(n: Note) -> str:
    return f"{n.id}. {n.content} (Added: {format_timestamp(n.created_at)})"


# ---- task ----


def cmd_task_add(ns: argparse.Namespace, store: Store) -> int:
    description = " ".join(ns.description)
    now = _now()
    due = resolve_due(ns.due, now) if ns.due else None
    if due is not None:
        print(f"Due date set: {format_timestamp(due)}")
    try:
        task_id = store.add_task(description, due=due, created_at=now)
    except ValueError as e:
        print(f"Cannot add task: {e}", file=sys.stderr)
        return 1
    print(f'Added task #{task_id}: "{description.strip()}"')
    return 0


def cmd_task_list(ns: argparse.Namespace, store: Store) -> int:
    status = None
    if ns.pending:
        status = TaskStatus.PENDING
    elif ns.done:
        status = TaskStatus.DONE
    tasks = store.list_tasks(status=status)

    print("Your Tasks:")
    print(RULE)
    now = _now()
    for t in tasks:
        print(_format_task(t, now))
    if not tasks:
        print("You have no tasks yet!")
    print(RULE)
    return 0


def cmd_task_done(ns: argparse.Namespace, store: Store) -> int:
    task_id = _parse_id(ns.task_id, "task")
    if task_id is None:
        return 0
    if not store.mark_done(task_id):
        print(f"Task with ID {task_id} not found.")
        return 0
    print(f"Marked task {task_id} as done.")
    return 0


def cmd_task_remove(ns: argparse.Namespace, store: Store) -> int:
    task_id = _parse_id(ns.task_id, "task")
    if task_id is None:
        return 0
    if not store.remove_task(task_id):
        print(f"Task with ID {task_id} not found.")
        return 0
    print(f"Removed task {task_id}.")
    return 0


def cmd_task_check(ns: argparse.Namespace, store: Store) -> int:
    report = check(store.pending_tasks_with_due(), _now())
    for line in render_check(report, quiet=ns.silent_if_clear):
        print(line)
    return 0


# ---- note ----


def cmd_note_add(ns: argparse.Namespace, store: Store) -> int:
    content = " ".join(ns.content)
    try:
        note_id = store.add_note(content, created_at=_now())
    except ValueError as e:
        print(f"Cannot add note: {e}", file=sys.stderr)
        return 1
    print(f'Added note #{note_id}: "{content.strip()}"')
    return 0


def cmd_note_list(ns: argparse.Namespace, store: Store) -> int:
    notes = store.list_notes()
    print("Your Notes:")
    print(RULE)
    for n in notes:
        print(_format_note(n))
    if not notes:
        print("You have no notes yet!")
    print(RULE)
    return 0


def cmd_note_remove(ns: argparse.Namespace, store: Store) -> int:
    note_id = _parse_id(ns.note_id, "note")
    if note_id is None:
        return 0
    if not store.remove_note(note_id):
        print(f"Note with ID {note_id} not found.")
        return 0
    print(f"Removed note {note_id}.")
    return 0


# ---- misc ----


def cmd_version(ns: argparse.Namespace, store: Optional[Store]) -> int:
    print(f"TaskManagerCLI Version: {__version__}")
    return 0


def cmd_init(ns: argparse.Namespace, store: Store) -> int:
    print(f"Initialized database at: {store.db_path}")
    return 0


def cmd_export(ns: argparse.Namespace, store: Store) -> int:
    data = store.export_json()
    out = Path(ns.out).expanduser().resolve()
    try:
        out.write_text(json.dumps(data, indent=2), encoding="utf-8")
    except OSError as e:
        print(f"Cannot export to {out}: {e}", file=sys.stderr)
        return 1
    print(f"Exported {len(data['tasks'])} tasks and {len(data['notes'])} notes to: {out}")
    return 0


def cmd_import(ns: argparse.Namespace, store: Store) -> int:
    data_path = Path(ns.file).expanduser().resolve()
    try:
        data = json.loads(data_path.read_text(encoding="utf-8"))
        store.import_json(data)
    except (OSError, ValueError, KeyError, TypeError) as e:
        print(f"Cannot import {data_path}: {e}", file=sys.stderr)
        return 1
    print(f"Imported from: {data_path} into {store.db_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tmgr",
        description="A simple CLI task manager and personal assistant: tasks, due dates and quick notes.",
    )
    p.add_argument(
        "--db",
        help="Path to SQLite DB (default: <user config dir>/taskmanager/taskmanager.db or TMGR_DB env var)",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Show debug logging on stderr.")
    sub = p.add_subparsers(dest="cmd", required=True)

    # task
    task = sub.add_parser("task", help="Manage your tasks.")
    task_sub = task.add_subparsers(dest="task_cmd", required=True)

    s = task_sub.add_parser("add", help="Add a new task.")
    s.add_argument("description", nargs="+", help="Task description.")
    s.add_argument(
        "-d",
        "--due",
        help="Due date: 'YYYY-MM-DD', 'YYYY-MM-DD HH:MM:SS', or relative (e.g., '1d', '2h30m', '1w').",
    )
    s.set_defaults(func=cmd_task_add)

    s = task_sub.add_parser("list", help="List tasks; overdue ones are marked.")
    g = s.add_mutually_exclusive_group()
    g.add_argument("--pending", action="store_true", help="Only pending tasks.")
    g.add_argument("--done", action="store_true", help="Only done tasks.")
    s.set_defaults(func=cmd_task_list)

    s = task_sub.add_parser("done", help="Mark a task as done.")
    s.add_argument("task_id", help="Task ID.")
    s.set_defaults(func=cmd_task_done)

    s = task_sub.add_parser("remove", help="Remove a task permanently.")
    s.add_argument("task_id", help="Task ID.")
    s.set_defaults(func=cmd_task_remove)

    s = task_sub.add_parser("check", help="Show overdue tasks and tasks due within 24 hours.")
    s.add_argument(
        "-s",
        "--silent-if-clear",
        action="store_true",
        help="Print nothing if no overdue or upcoming tasks are found.",
    )
    s.set_defaults(func=cmd_task_check)

    # note
    note = sub.add_parser("note", help="Manage your notes (lists them by default).")
    note.set_defaults(func=cmd_note_list)
    note_sub = note.add_subparsers(dest="note_cmd")

    s = note_sub.add_parser("add", help="Add a new note.")
    s.add_argument("content", nargs="+", help="Note content.")
    s.set_defaults(func=cmd_note_add)

    s = note_sub.add_parser("list", help="List notes.")
    s.set_defaults(func=cmd_note_list)

    s = note_sub.add_parser("remove", help="Remove a note permanently.")
    s.add_argument("note_id", help="Note ID.")
    s.set_defaults(func=cmd_note_remove)

    # misc
    s = sub.add_parser("version", help="Print the version number.")
    s.set_defaults(func=cmd_version, needs_store=False)

    s = sub.add_parser("init", help="Create the database and print its location.")
    s.set_defaults(func=cmd_init)

    s = sub.add_parser("export", help="Export tasks and notes to JSON.")
    s.add_argument("--out", required=True, help="Output JSON file path.")
    s.set_defaults(func=cmd_export)

    s = sub.add_parser("import", help="Replace all tasks and notes with a JSON export.")
    s.add_argument("file", help="JSON file previously written by tmgr export.")
    s.set_defaults(func=cmd_import)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)

    settings = load_settings()
    setup_logging(
        console_level=logging.DEBUG if ns.verbose else settings.log_level,
        log_file=settings.log_file,
    )

    if not getattr(ns, "needs_store", True):
        return int(ns.func(ns, None))

    try:
        with Store(_db_path_from_args(ns)) as store:
            return int(ns.func(ns, store))
    except StoreError as e:
        logger.error("%s", e)
        return 1
