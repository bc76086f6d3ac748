"""SQLite connection handling shared by every ``*_db`` module.

All tables live in one database file. Each store module owns the DDL
for its own tables; ``init_db`` creates them all in dependency order.

Database location: data/revoc.db (relative to project root), overridable
with the REVOC_DB_PATH setting.
"""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from revoc.config import config
from revoc.utils.exceptions import AccessDeniedError, NotFoundError
from revoc.utils.text_processing import fold


def _resolve_db_path() -> str:
    """Resolve the SQLite database file path.

    Uses the REVOC_DB_PATH setting when present, otherwise walks up from
    this file to the project root and uses ``data/revoc.db`` there.

    Returns:
        Absolute path to the database file
    """
    explicit = config.get("revoc_db_path")
    if explicit:
        Path(explicit).parent.mkdir(parents=True, exist_ok=True)
        return explicit

    current = Path(__file__).resolve().parent
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            db_dir = parent / "data"
            db_dir.mkdir(parents=True, exist_ok=True)
            return str(db_dir / "revoc.db")

    db_dir = Path.cwd() / "data"
    db_dir.mkdir(parents=True, exist_ok=True)
    return str(db_dir / "revoc.db")


DB_PATH: Optional[str] = None


def get_db_path() -> str:
    global DB_PATH
    if DB_PATH is None:
        DB_PATH = _resolve_db_path()
    return DB_PATH


def set_db_path(path: str) -> None:
    """Point every store at a different database file (used by tests)."""
    global DB_PATH
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    DB_PATH = path


def get_connection() -> sqlite3.Connection:
    """Get a new SQLite connection (connection-per-call for thread safety).

    Registers ``casefold(text)`` so SQL can do the same Unicode-aware
    case-insensitive comparisons as the Python side.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row
    """
    conn = sqlite3.connect(get_db_path())
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.create_function("casefold", 1, fold, deterministic=True)
    return conn


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with microseconds."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def to_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def check_owner(kind: str, record_id: int, owner_id: Optional[int], user_id: int) -> None:
    """Raise NotFound / AccessDenied for a looked-up owner id."""
    if owner_id is None:
        raise NotFoundError(kind, record_id)
    if owner_id != user_id:
        raise AccessDeniedError(kind, record_id, user_id)


def init_db() -> None:
    """Create every table if it doesn't exist. Safe to call repeatedly."""
    from revoc import calendar_db, contacts_db, conversations_db, tasks_db, users_db

    users_db.init_users_db()
    conversations_db.init_conversations_db()
    contacts_db.init_contacts_db()
    calendar_db.init_calendar_db()
    tasks_db.init_tasks_db()
