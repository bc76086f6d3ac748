"""SQLite-backed tasks.

Like calendar events, tasks are typically confirmed from a candidate
detected in a message and then live independently: they can be updated,
completed and deleted.
"""

import sqlite3
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from revoc.db import check_owner, get_connection, utc_now
from revoc.models import Task
from revoc.utils.exceptions import ValidationError
from revoc.utils.logger import logger
from revoc.utils.text_processing import normalize_name

_UPDATABLE = ("title", "description", "due_date", "priority", "assigned_to")
_PRIORITIES = (None, "low", "medium", "high")

# Filters accepted by list_tasks
PENDING = "pending"
COMPLETED = "completed"


def init_tasks_db() -> None:
    """Create the tasks table if it doesn't exist."""
    conn = get_connection()
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                due_date TEXT,
                priority TEXT,
                completed BOOLEAN DEFAULT FALSE,
                completed_at TEXT,
                message_id INTEGER,
                conversation_id INTEGER,
                assigned_to TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE SET NULL,
                FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE SET NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_tasks_user_due
                ON tasks(user_id, due_date)
        """)
        conn.commit()
    finally:
        conn.close()


def _assert_owner(conn: sqlite3.Connection, user_id: int, task_id: int) -> sqlite3.Row:
    row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
    check_owner("task", task_id, row["user_id"] if row else None, user_id)
    return row


def _date_str(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def _check_priority(priority: Optional[str]) -> None:
    if priority not in _PRIORITIES:
        raise ValidationError("priority", "must be low, medium or high")


def create_task(
    user_id: int,
    title: str,
    description: Optional[str] = None,
    due_date: Optional[date] = None,
    priority: Optional[str] = None,
    assigned_to: Optional[str] = None,
    message_id: Optional[int] = None,
    conversation_id: Optional[int] = None,
) -> Task:
    """Create a task.

    Raises:
        ValidationError: On empty title or unknown priority
    """
    title = normalize_name(title)
    if not title:
        raise ValidationError("title", "must not be empty")
    _check_priority(priority)

    conn = get_connection()
    try:
        cursor = conn.execute(
            """INSERT INTO tasks
               (user_id, title, description, due_date, priority, assigned_to,
                message_id, conversation_id, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                user_id, title, description, _date_str(due_date), priority,
                assigned_to, message_id, conversation_id, utc_now(),
            ),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (cursor.lastrowid,)).fetchone()
        logger.info(f"Created task {row['id']} '{title}' for user {user_id}")
        return Task.from_row(row)
    finally:
        conn.close()


def get_task(user_id: int, task_id: int) -> Task:
    conn = get_connection()
    try:
        return Task.from_row(_assert_owner(conn, user_id, task_id))
    finally:
        conn.close()


def list_tasks(
    user_id: int,
    status: Optional[str] = None,
    due_from: Optional[date] = None,
    due_to: Optional[date] = None,
) -> List[Task]:
    """List tasks.

    Args:
        user_id: Owner
        status: 'pending', 'completed' or None for all
        due_from: Inclusive lower bound on due_date
        due_to: Inclusive upper bound on due_date

    Returns:
        Tasks ordered by due date (undated last), then id
    """
    query = "SELECT * FROM tasks WHERE user_id = ?"
    params: list = [user_id]
    if status == PENDING:
        query += " AND completed = 0"
    elif status == COMPLETED:
        query += " AND completed = 1"
    elif status is not None:
        raise ValidationError("status", "must be 'pending' or 'completed'")
    if due_from is not None:
        query += " AND due_date >= ?"
        params.append(_date_str(due_from))
    if due_to is not None:
        query += " AND due_date <= ?"
        params.append(_date_str(due_to))
    query += " ORDER BY due_date IS NULL, due_date ASC, id ASC"

    conn = get_connection()
    try:
        rows = conn.execute(query, params).fetchall()
        return [Task.from_row(r) for r in rows]
    finally:
        conn.close()


def update_task(user_id: int, task_id: int, changes: Dict[str, Any]) -> Task:
    """Apply a partial update. Completion goes through complete_task."""
    unknown = set(changes) - set(_UPDATABLE)
    if unknown:
        raise ValidationError(sorted(unknown)[0], "cannot be updated")

    conn = get_connection()
    try:
        data = dict(_assert_owner(conn, user_id, task_id))
        data.update(changes)
        try:
            merged = Task.model_validate(data)
        except PydanticValidationError as e:
            field = str(e.errors()[0]["loc"][0]) if e.errors() else "task"
            raise ValidationError(field, "has an invalid value")
        if not normalize_name(merged.title):
            raise ValidationError("title", "must not be empty")
        _check_priority(merged.priority)

        conn.execute(
            """UPDATE tasks
               SET title = ?, description = ?, due_date = ?, priority = ?, assigned_to = ?
               WHERE id = ?""",
            (
                normalize_name(merged.title), merged.description,
                _date_str(merged.due_date), merged.priority, merged.assigned_to,
                task_id,
            ),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return Task.from_row(row)
    finally:
        conn.close()


def complete_task(user_id: int, task_id: int) -> Task:
    """Mark a task completed. Completing twice keeps the first completion time."""
    conn = get_connection()
    try:
        _assert_owner(conn, user_id, task_id)
        conn.execute(
            """UPDATE tasks SET completed = 1, completed_at = ?
               WHERE id = ? AND completed = 0""",
            (utc_now(), task_id),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        logger.info(f"Completed task {task_id}")
        return Task.from_row(row)
    finally:
        conn.close()


def delete_task(user_id: int, task_id: int) -> bool:
    conn = get_connection()
    try:
        _assert_owner(conn, user_id, task_id)
        cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()
