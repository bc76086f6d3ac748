"""SQLite-backed calendar events.

Events usually start life as a candidate detected in a user message and
confirmed by the user; ``message_id``/``conversation_id`` remember where
they came from. After that they have their own lifecycle.
"""

import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from revoc.db import check_owner, get_connection, to_timestamp, utc_now
from revoc.models import CalendarEvent
from revoc.utils.exceptions import ValidationError
from revoc.utils.logger import logger
from revoc.utils.text_processing import normalize_name

_UPDATABLE = ("title", "description", "start_time", "end_time", "all_day", "location")


def init_calendar_db() -> None:
    """Create the calendar_events table if it doesn't exist."""
    conn = get_connection()
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS calendar_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                start_time TEXT NOT NULL,
                end_time TEXT,
                all_day BOOLEAN DEFAULT FALSE,
                location TEXT,
                message_id INTEGER,
                conversation_id INTEGER,
                created_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE SET NULL,
                FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE SET NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_calendar_events_user_start
                ON calendar_events(user_id, start_time)
        """)
        conn.commit()
    finally:
        conn.close()


def _assert_owner(conn: sqlite3.Connection, user_id: int, event_id: int) -> sqlite3.Row:
    row = conn.execute("SELECT * FROM calendar_events WHERE id = ?", (event_id,)).fetchone()
    check_owner("event", event_id, row["user_id"] if row else None, user_id)
    return row


def _validate_times(start_time: Optional[datetime], end_time: Optional[datetime]) -> None:
    if start_time is None:
        raise ValidationError("start_time", "is required")
    if end_time is not None and end_time < start_time:
        raise ValidationError("end_time", "must not be before start_time")


def create_event(
    user_id: int,
    title: str,
    start_time: datetime,
    end_time: Optional[datetime] = None,
    description: Optional[str] = None,
    all_day: bool = False,
    location: Optional[str] = None,
    message_id: Optional[int] = None,
    conversation_id: Optional[int] = None,
) -> CalendarEvent:
    """Create a calendar event.

    Raises:
        ValidationError: On empty title, missing start or end before start
    """
    title = normalize_name(title)
    if not title:
        raise ValidationError("title", "must not be empty")
    _validate_times(start_time, end_time)

    conn = get_connection()
    try:
        cursor = conn.execute(
            """INSERT INTO calendar_events
               (user_id, title, description, start_time, end_time, all_day,
                location, message_id, conversation_id, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                user_id, title, description, to_timestamp(start_time),
                to_timestamp(end_time), bool(all_day), location,
                message_id, conversation_id, utc_now(),
            ),
        )
        conn.commit()
        row = conn.execute(
            "SELECT * FROM calendar_events WHERE id = ?", (cursor.lastrowid,)
        ).fetchone()
        logger.info(f"Created event {row['id']} '{title}' for user {user_id}")
        return CalendarEvent.from_row(row)
    finally:
        conn.close()


def get_event(user_id: int, event_id: int) -> CalendarEvent:
    conn = get_connection()
    try:
        return CalendarEvent.from_row(_assert_owner(conn, user_id, event_id))
    finally:
        conn.close()


def list_events(
    user_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[CalendarEvent]:
    """List events ordered by start time, optionally within [start, end]."""
    query = "SELECT * FROM calendar_events WHERE user_id = ?"
    params: list = [user_id]
    if start is not None:
        query += " AND start_time >= ?"
        params.append(to_timestamp(start))
    if end is not None:
        query += " AND start_time <= ?"
        params.append(to_timestamp(end))
    query += " ORDER BY start_time ASC, id ASC"

    conn = get_connection()
    try:
        rows = conn.execute(query, params).fetchall()
        return [CalendarEvent.from_row(r) for r in rows]
    finally:
        conn.close()


def update_event(user_id: int, event_id: int, changes: Dict[str, Any]) -> CalendarEvent:
    """Apply a partial update. Unknown keys are rejected."""
    unknown = set(changes) - set(_UPDATABLE)
    if unknown:
        raise ValidationError(sorted(unknown)[0], "cannot be updated")

    conn = get_connection()
    try:
        data = dict(_assert_owner(conn, user_id, event_id))
        data.update(changes)
        try:
            merged = CalendarEvent.model_validate(data)
        except PydanticValidationError as e:
            field = str(e.errors()[0]["loc"][0]) if e.errors() else "event"
            raise ValidationError(field, "has an invalid value")
        if not normalize_name(merged.title):
            raise ValidationError("title", "must not be empty")
        _validate_times(merged.start_time, merged.end_time)

        conn.execute(
            """UPDATE calendar_events
               SET title = ?, description = ?, start_time = ?, end_time = ?,
                   all_day = ?, location = ?
               WHERE id = ?""",
            (
                normalize_name(merged.title), merged.description,
                to_timestamp(merged.start_time), to_timestamp(merged.end_time),
                merged.all_day, merged.location, event_id,
            ),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM calendar_events WHERE id = ?", (event_id,)).fetchone()
        return CalendarEvent.from_row(row)
    finally:
        conn.close()


def delete_event(user_id: int, event_id: int) -> bool:
    conn = get_connection()
    try:
        _assert_owner(conn, user_id, event_id)
        cursor = conn.execute("DELETE FROM calendar_events WHERE id = ?", (event_id,))
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()
