"""SQLite-backed user records.

Users own conversations, contacts, calendar events and tasks. Credential
handling lives outside this package; only identity and role are kept.
"""

import sqlite3
from typing import List, Optional

from revoc.db import get_connection, utc_now
from revoc.models import Role, User
from revoc.utils.exceptions import NotFoundError, ValidationError
from revoc.utils.logger import logger
from revoc.utils.text_processing import normalize_name


def init_users_db() -> None:
    """Create the users table if it doesn't exist."""
    conn = get_connection()
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT NOT NULL UNIQUE,
                display_name TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'user',
                created_at TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


def create_user(email: str, display_name: str, role: str = "user") -> User:
    """Create a user.

    Args:
        email: Unique login email
        display_name: Name shown in the UI
        role: 'user' or 'admin'

    Returns:
        The created User

    Raises:
        ValidationError: On empty email/display name, unknown role or a
            duplicate email
    """
    email = (email or "").strip().lower()
    display_name = normalize_name(display_name)
    if not email:
        raise ValidationError("email", "must not be empty")
    if not display_name:
        raise ValidationError("display_name", "must not be empty")
    try:
        role = Role(role).value
    except ValueError:
        raise ValidationError("role", f"unknown role '{role}'")

    conn = get_connection()
    try:
        cursor = conn.execute(
            """INSERT INTO users (email, display_name, role, created_at)
               VALUES (?, ?, ?, ?)""",
            (email, display_name, role, utc_now()),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM users WHERE id = ?", (cursor.lastrowid,)).fetchone()
        logger.info(f"Created user {row['id']} ({email})")
        return User.from_row(row)
    except sqlite3.IntegrityError:
        raise ValidationError("email", "a user with this email already exists")
    finally:
        conn.close()


def get_user(user_id: int) -> User:
    """Get a user by id.

    Raises:
        NotFoundError: If no such user exists
    """
    conn = get_connection()
    try:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise NotFoundError("user", user_id)
        return User.from_row(row)
    finally:
        conn.close()


def get_user_by_email(email: str) -> Optional[User]:
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT * FROM users WHERE email = ?", ((email or "").strip().lower(),)
        ).fetchone()
        return User.from_row(row) if row else None
    finally:
        conn.close()


def list_users() -> List[User]:
    conn = get_connection()
    try:
        rows = conn.execute("SELECT * FROM users ORDER BY id ASC").fetchall()
        return [User.from_row(r) for r in rows]
    finally:
        conn.close()
