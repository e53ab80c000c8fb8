import sqlite3
from datetime import datetime
from pathlib import Path

import pytest

from tmgr import cli
from tmgr.schedule import ALL_CLEAR

NOW = datetime(2024, 1, 10, 12, 0, 0)


@pytest.fixture
def run(tmp_path: Path, monkeypatch, capsys):
    monkeypatch.setattr(cli, "_now", lambda: NOW)
    db_path = tmp_path / "cli.db"

    def _run(*args):
        rc = cli.main(["--db", str(db_path), *args])
        out, err = capsys.readouterr()
        return rc, out, err

    return _run


def test_version(run, tmp_path: Path):
    rc, out, _ = run("version")
    assert rc == 0
    assert out.strip() == f"TaskManagerCLI Version: {cli.__version__}"
    assert not (tmp_path / "cli.db").exists()


def test_add_with_relative_due(run):
    rc, out, _ = run("task", "add", "write", "report", "--due", "2d")
    assert rc == 0
    assert "Due date set: 2024-01-12 12:00:00" in out
    assert 'Added task #1: "write report"' in out

    _, out, _ = run("task", "list")
    assert "1. [pending] write report (Due: Fri, 12 Jan 2024 12:00)" in out


def test_add_with_bad_due_keeps_task(run):
    rc, out, err = run("task", "add", "stretch", "-d", "someday")
    assert rc == 0
    assert "Due date set" not in out
    assert "Invalid due date format: 'someday'" in err

    _, out, _ = run("task", "list")
    assert "stretch (Due: N/A)" in out


def test_list_marks_overdue(run):
    run("task", "add", "old", "--due", "2024-01-01")
    run("task", "add", "finished", "--due", "2024-01-01 08:00:00")
    run("task", "done", "2")

    _, out, _ = run("task", "list")
    assert "1. [pending] old (Due: Mon, 01 Jan 2024 00:00) [OVERDUE!]" in out
    assert "2. [DONE]    finished (Due: Mon, 01 Jan 2024 08:00)" in out
    assert "finished (Due: Mon, 01 Jan 2024 08:00) [OVERDUE!]" not in out


def test_list_empty(run):
    _, out, _ = run("task", "list")
    assert "You have no tasks yet!" in out


def test_check_upcoming_only(run):
    run("task", "add", "call", "mom", "--due", "1h")
    rc, out, _ = run("task", "check")
    assert rc == 0
    lines = out.splitlines()
    assert lines[lines.index("Overdue Tasks:") + 1] == "  (None)"
    upcoming_at = lines.index("Upcoming Tasks (due within 24 hours):")
    assert lines[upcoming_at + 1] == "  - ID 1: call mom (Due: Wed, 10 Jan - 13:00)"


def test_check_all_clear(run):
    run("task", "add", "far", "away", "--due", "1w")
    _, out, _ = run("task", "check")
    assert out.strip() == ALL_CLEAR

    _, out, _ = run("task", "check", "--silent-if-clear")
    assert out == ""


def test_done_missing_task(run):
    rc, out, _ = run("task", "done", "999")
    assert rc == 0
    assert out.strip() == "Task with ID 999 not found."


def test_invalid_id_is_reported(run):
    rc, _, err = run("task", "remove", "abc")
    assert rc == 0
    assert "Invalid task ID provided: 'abc'" in err


def test_task_remove(run):
    run("task", "add", "temp")
    _, out, _ = run("task", "remove", "1")
    assert out.strip() == "Removed task 1."
    _, out, _ = run("task", "remove", "1")
    assert out.strip() == "Task with ID 1 not found."


def test_notes(run):
    rc, out, _ = run("note", "add", "buy", "oat", "milk")
    assert rc == 0
    assert 'Added note #1: "buy oat milk"' in out

    _, out, _ = run("note")
    assert "1. buy oat milk (Added: 2024-01-10 12:00:00)" in out

    _, out, _ = run("note", "remove", "1")
    assert out.strip() == "Removed note 1."
    _, out, _ = run("note", "remove", "1")
    assert out.strip() == "Note with ID 1 not found."

    _, out, _ = run("note", "list")
    assert "You have no notes yet!" in out


def test_export_import(run, tmp_path: Path):
    run("task", "add", "keep", "me", "--due", "3h")
    run("note", "add", "hello")
    backup = tmp_path / "backup.json"
    rc, out, _ = run("export", "--out", str(backup))
    assert rc == 0
    assert "Exported 1 tasks and 1 notes" in out

    run("task", "remove", "1")
    rc, _, _ = run("import", str(backup))
    assert rc == 0
    _, out, _ = run("task", "list")
    assert "1. [pending] keep me (Due: Wed, 10 Jan 2024 15:00)" in out


def test_unusable_db_path_exits_nonzero(tmp_path: Path, capsys):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    rc = cli.main(["--db", str(blocker / "t.db"), "task", "list"])
    assert rc == 1
    assert "failed to create database directory" in capsys.readouterr().err


def test_init_creates_database(run, tmp_path: Path):
    rc, out, _ = run("init")
    assert rc == 0
    assert out.strip() == f"Initialized database at: {(tmp_path / 'cli.db').resolve()}"
    assert (tmp_path / "cli.db").exists()


def test_unreadable_stored_due_date(run, tmp_path: Path):
    run("task", "add", "legacy")
    run("task", "add", "soon", "--due", "2h")
    conn = sqlite3.connect(tmp_path / "cli.db")
    conn.execute("UPDATE tasks SET due_date = 'junk' WHERE id = 1")
    conn.commit()
    conn.close()

    rc, out, _ = run("task", "list")
    assert rc == 0
    assert "1. [pending] legacy (Due: Invalid Date Format in DB)" in out

    rc, out, err = run("task", "check")
    assert rc == 0
    assert "legacy" not in out
    assert "  - ID 2: soon (Due: Wed, 10 Jan - 14:00)" in out
    assert err.count("Could not parse due date 'junk'") == 1


def test_export_to_unwritable_path(run, tmp_path: Path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    rc, out, err = run("export", "--out", str(blocker / "backup.json"))
    assert rc == 1
    assert "Cannot export to" in err
    assert out == ""


def test_unwritable_log_file_is_reported(run, tmp_path: Path, monkeypatch):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    monkeypatch.setenv("TMGR_LOG_FILE", str(blocker / "logs" / "tmgr.log"))
    rc, out, err = run("version")
    assert rc == 0
    assert "TaskManagerCLI Version" in out
    assert "Cannot write log file" in err
