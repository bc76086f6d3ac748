"""SQLite-backed contact store and contact-message links.

Contacts belong to one user and carry a display name plus free-text
notes. Names are not unique: two contacts may share one, and only the id
tells them apart.

A contact link records that a contact was referenced in a specific
message. The (contact_id, message_id, relationship) triple is UNIQUE and
inserts use INSERT OR IGNORE, so re-linking the same mention is a no-op.
"""

import sqlite3
from typing import List, Optional, Tuple

from revoc.db import check_owner, get_connection, utc_now
from revoc.models import Contact, ContactLink, Message, Relationship
from revoc.utils.exceptions import ValidationError
from revoc.utils.logger import logger
from revoc.utils.text_processing import fold, normalize_name


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

def init_contacts_db() -> None:
    """Create the contacts and contact_links tables if they don't exist."""
    conn = get_connection()
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS contacts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)

        # Junction table: which messages mention which contacts
        conn.execute("""
            CREATE TABLE IF NOT EXISTS contact_links (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                contact_id INTEGER NOT NULL,
                message_id INTEGER NOT NULL,
                relationship TEXT NOT NULL DEFAULT 'mentioned',
                created_at TEXT NOT NULL,
                FOREIGN KEY (contact_id) REFERENCES contacts(id) ON DELETE CASCADE,
                FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE CASCADE,
                UNIQUE(contact_id, message_id, relationship)
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_contacts_user
                ON contacts(user_id)
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_contact_links_message
                ON contact_links(message_id)
        """)
        conn.commit()
    finally:
        conn.close()


def _assert_owner(conn: sqlite3.Connection, user_id: int, contact_id: int) -> sqlite3.Row:
    row = conn.execute("SELECT * FROM contacts WHERE id = ?", (contact_id,)).fetchone()
    check_owner("contact", contact_id, row["user_id"] if row else None, user_id)
    return row


def _assert_message_owner(conn: sqlite3.Connection, user_id: int, message_id: int) -> None:
    row = conn.execute(
        """SELECT c.user_id FROM messages m
           JOIN conversations c ON c.id = m.conversation_id
           WHERE m.id = ?""",
        (message_id,),
    ).fetchone()
    check_owner("message", message_id, row["user_id"] if row else None, user_id)


def _clean_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    notes = notes.strip()
    return notes or None


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

def create_contact(user_id: int, name: str, notes: Optional[str] = None) -> Contact:
    """Create a contact.

    Args:
        user_id: Owner of the contact
        name: Display name (whitespace is normalized; must not be empty)
        notes: Optional free-text notes

    Returns:
        The created Contact

    Raises:
        ValidationError: If the name is empty
    """
    name = normalize_name(name)
    if not name:
        raise ValidationError("name", "must not be empty")

    conn = get_connection()
    try:
        cursor = conn.execute(
            """INSERT INTO contacts (user_id, name, notes, created_at)
               VALUES (?, ?, ?, ?)""",
            (user_id, name, _clean_notes(notes), utc_now()),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM contacts WHERE id = ?", (cursor.lastrowid,)).fetchone()
        logger.info(f"Created contact {row['id']} '{name}' for user {user_id}")
        return Contact.from_row(row)
    finally:
        conn.close()


def get_contact(user_id: int, contact_id: int) -> Contact:
    """Get a contact owned by the user.

    Raises:
        NotFoundError: If the contact doesn't exist
        AccessDeniedError: If it belongs to another user
    """
    conn = get_connection()
    try:
        return Contact.from_row(_assert_owner(conn, user_id, contact_id))
    finally:
        conn.close()


def update_contact(
    user_id: int,
    contact_id: int,
    name: Optional[str] = None,
    notes: Optional[str] = None,
) -> Contact:
    """Update a contact's name and/or notes. ``None`` leaves a field unchanged."""
    conn = get_connection()
    try:
        current = _assert_owner(conn, user_id, contact_id)
        new_name = current["name"]
        if name is not None:
            new_name = normalize_name(name)
            if not new_name:
                raise ValidationError("name", "must not be empty")
        new_notes = current["notes"] if notes is None else _clean_notes(notes)

        conn.execute(
            "UPDATE contacts SET name = ?, notes = ? WHERE id = ?",
            (new_name, new_notes, contact_id),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM contacts WHERE id = ?", (contact_id,)).fetchone()
        return Contact.from_row(row)
    finally:
        conn.close()


def list_contacts(user_id: int) -> List[Contact]:
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM contacts WHERE user_id = ? ORDER BY id ASC", (user_id,)
        ).fetchall()
        return [Contact.from_row(r) for r in rows]
    finally:
        conn.close()


def find_contacts_by_exact_name(user_id: int, name: str) -> List[Contact]:
    """Find the user's contacts whose name equals ``name`` ignoring case.

    This is exact matching: "Maria" does not match "Maria Lopez".

    Returns:
        Matching contacts ordered by id (may be empty or several)
    """
    needle = fold(normalize_name(name))
    if not needle:
        return []
    conn = get_connection()
    try:
        rows = conn.execute(
            """SELECT * FROM contacts
               WHERE user_id = ? AND casefold(name) = ?
               ORDER BY id ASC""",
            (user_id, needle),
        ).fetchall()
        return [Contact.from_row(r) for r in rows]
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Contact links
# ---------------------------------------------------------------------------

def link_contact_message(
    user_id: int,
    contact_id: int,
    message_id: int,
    relationship: str = Relationship.MENTIONED.value,
) -> Tuple[ContactLink, bool]:
    """Link a contact to a message, idempotently.

    Both the contact and the message's conversation must belong to the
    user. A duplicate (contact_id, message_id, relationship) is silently
    ignored and the existing link is returned.

    Args:
        user_id: Requesting user
        contact_id: The contact being linked
        message_id: The message that references it
        relationship: Link kind (only 'mentioned' today)

    Returns:
        Tuple of (link, created) where created is False if it already existed
    """
    try:
        relationship = Relationship(relationship).value
    except ValueError:
        raise ValidationError("relationship", f"unknown relationship '{relationship}'")

    conn = get_connection()
    try:
        _assert_owner(conn, user_id, contact_id)
        _assert_message_owner(conn, user_id, message_id)
        cursor = conn.execute(
            """INSERT OR IGNORE INTO contact_links
               (contact_id, message_id, relationship, created_at)
               VALUES (?, ?, ?, ?)""",
            (contact_id, message_id, relationship, utc_now()),
        )
        conn.commit()
        created = cursor.rowcount > 0
        row = conn.execute(
            """SELECT * FROM contact_links
               WHERE contact_id = ? AND message_id = ? AND relationship = ?""",
            (contact_id, message_id, relationship),
        ).fetchone()
        if created:
            logger.info(f"Linked contact {contact_id} to message {message_id} ({relationship})")
        else:
            logger.debug(f"Link contact {contact_id} -> message {message_id} already exists")
        return ContactLink.from_row(row), created
    finally:
        conn.close()


def get_links_for_message(user_id: int, message_id: int) -> List[ContactLink]:
    conn = get_connection()
    try:
        _assert_message_owner(conn, user_id, message_id)
        rows = conn.execute(
            "SELECT * FROM contact_links WHERE message_id = ? ORDER BY id ASC",
            (message_id,),
        ).fetchall()
        return [ContactLink.from_row(r) for r in rows]
    finally:
        conn.close()


def get_links_for_contact(user_id: int, contact_id: int) -> List[ContactLink]:
    conn = get_connection()
    try:
        _assert_owner(conn, user_id, contact_id)
        rows = conn.execute(
            "SELECT * FROM contact_links WHERE contact_id = ? ORDER BY id ASC",
            (contact_id,),
        ).fetchall()
        return [ContactLink.from_row(r) for r in rows]
    finally:
        conn.close()


def get_contact_messages(user_id: int, contact_id: int) -> List[Message]:
    """Get the messages that mention a contact, oldest first."""
    conn = get_connection()
    try:
        _assert_owner(conn, user_id, contact_id)
        rows = conn.execute(
            """SELECT DISTINCT m.*
               FROM contact_links cl
               JOIN messages m ON m.id = cl.message_id
               WHERE cl.contact_id = ?
               ORDER BY m.id ASC""",
            (contact_id,),
        ).fetchall()
        return [Message.from_row(r) for r in rows]
    finally:
        conn.close()
