"""SQLite-backed conversation persistence for Revoc.

Stores conversations and their append-only message history. Messages
are never edited or reordered: insertion order (the autoincrement id) is
chronological order. Only a conversation's title may change.

Every read and write takes the requesting ``user_id`` and refuses to
touch conversations that belong to someone else.
"""

import sqlite3
from datetime import datetime
from typing import Dict, List, Optional

from revoc.config import config
from revoc.db import check_owner, get_connection, to_timestamp, utc_now
from revoc.models import (
    ContactLinkWithName,
    Conversation,
    Message,
    MessageWithContactLinks,
    Sender,
)
from revoc.utils.exceptions import ValidationError
from revoc.utils.logger import logger
from revoc.utils.text_processing import normalize_name


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

def init_conversations_db() -> None:
    """Create the conversations and messages tables if they don't exist."""
    conn = get_connection()
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id INTEGER NOT NULL,
                sender TEXT NOT NULL CHECK (sender IN ('user', 'assistant')),
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_conversations_user
                ON conversations(user_id)
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_conversation
                ON messages(conversation_id, created_at)
        """)
        conn.commit()
    finally:
        conn.close()


def _assert_owner(conn: sqlite3.Connection, user_id: int, conversation_id: int) -> sqlite3.Row:
    row = conn.execute(
        "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
    ).fetchone()
    check_owner("conversation", conversation_id, row["user_id"] if row else None, user_id)
    return row


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

def create_conversation(
    user_id: int,
    title: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Conversation:
    """Create a new conversation record.

    Args:
        user_id: Owner of the conversation
        title: Display title (the configured default title if empty)
        created_at: Creation time override, for imports

    Returns:
        The created Conversation
    """
    title = normalize_name(title) or config.default_conversation_title
    conn = get_connection()
    try:
        cursor = conn.execute(
            """INSERT INTO conversations (user_id, title, created_at)
               VALUES (?, ?, ?)""",
            (user_id, title, to_timestamp(created_at) or utc_now()),
        )
        conn.commit()
        row = conn.execute(
            "SELECT * FROM conversations WHERE id = ?", (cursor.lastrowid,)
        ).fetchone()
        logger.info(f"Created conversation {row['id']} for user {user_id}")
        return Conversation.from_row(row)
    finally:
        conn.close()


def get_conversation(user_id: int, conversation_id: int) -> Conversation:
    """Get a conversation owned by the user.

    Raises:
        NotFoundError: If the conversation doesn't exist
        AccessDeniedError: If it belongs to another user
    """
    conn = get_connection()
    try:
        return Conversation.from_row(_assert_owner(conn, user_id, conversation_id))
    finally:
        conn.close()


def list_conversations(user_id: int) -> List[Conversation]:
    """List the user's conversations, newest first."""
    conn = get_connection()
    try:
        rows = conn.execute(
            """SELECT * FROM conversations
               WHERE user_id = ?
               ORDER BY created_at DESC, id DESC""",
            (user_id,),
        ).fetchall()
        return [Conversation.from_row(r) for r in rows]
    finally:
        conn.close()


def rename_conversation(user_id: int, conversation_id: int, title: str) -> Conversation:
    """Update a conversation's title.

    Raises:
        ValidationError: If the title is empty
        NotFoundError / AccessDeniedError: As for get_conversation
    """
    title = normalize_name(title)
    if not title:
        raise ValidationError("title", "must not be empty")

    conn = get_connection()
    try:
        _assert_owner(conn, user_id, conversation_id)
        conn.execute(
            "UPDATE conversations SET title = ? WHERE id = ?",
            (title, conversation_id),
        )
        conn.commit()
        row = conn.execute(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        ).fetchone()
        logger.info(f"Renamed conversation {conversation_id} to '{title}'")
        return Conversation.from_row(row)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

def add_message(
    user_id: int,
    conversation_id: int,
    sender: str,
    content: str,
    created_at: Optional[datetime] = None,
) -> Message:
    """Append a message to a conversation.

    Args:
        user_id: Requesting user (must own the conversation)
        conversation_id: Target conversation
        sender: 'user' or 'assistant'
        content: Message text (must not be blank)
        created_at: Creation time override, for imports

    Returns:
        The stored Message

    Raises:
        ValidationError: On blank content or unknown sender
        NotFoundError / AccessDeniedError: As for get_conversation
    """
    try:
        sender = Sender(sender).value
    except ValueError:
        raise ValidationError("sender", f"unknown sender '{sender}'")
    if not content or not content.strip():
        raise ValidationError("content", "must not be empty")

    conn = get_connection()
    try:
        _assert_owner(conn, user_id, conversation_id)
        cursor = conn.execute(
            """INSERT INTO messages (conversation_id, sender, content, created_at)
               VALUES (?, ?, ?, ?)""",
            (conversation_id, sender, content, to_timestamp(created_at) or utc_now()),
        )
        conn.commit()
        row = conn.execute(
            "SELECT * FROM messages WHERE id = ?", (cursor.lastrowid,)
        ).fetchone()
        logger.debug(f"Stored {sender} message {row['id']} in conversation {conversation_id}")
        return Message.from_row(row)
    finally:
        conn.close()


def get_message(user_id: int, message_id: int) -> Message:
    """Get one message, checking that its conversation belongs to the user."""
    conn = get_connection()
    try:
        row = conn.execute(
            """SELECT m.*, c.user_id AS owner_id
               FROM messages m
               JOIN conversations c ON c.id = m.conversation_id
               WHERE m.id = ?""",
            (message_id,),
        ).fetchone()
        check_owner("message", message_id, row["owner_id"] if row else None, user_id)
        data = dict(row)
        data.pop("owner_id")
        return Message.from_row(data)
    finally:
        conn.close()


def get_messages(user_id: int, conversation_id: int) -> List[MessageWithContactLinks]:
    """Get a conversation's messages in order, each with its contact links.

    Args:
        user_id: Requesting user
        conversation_id: The conversation

    Returns:
        Messages oldest first; ``contact_links`` carry the contact names
    """
    conn = get_connection()
    try:
        _assert_owner(conn, user_id, conversation_id)
        rows = conn.execute(
            """SELECT * FROM messages
               WHERE conversation_id = ?
               ORDER BY id ASC""",
            (conversation_id,),
        ).fetchall()
        link_rows = conn.execute(
            """SELECT cl.*, ct.name AS contact_name
               FROM contact_links cl
               JOIN messages m ON m.id = cl.message_id
               JOIN contacts ct ON ct.id = cl.contact_id
               WHERE m.conversation_id = ?
               ORDER BY cl.id ASC""",
            (conversation_id,),
        ).fetchall()

        links: Dict[int, List[ContactLinkWithName]] = {}
        for link in link_rows:
            links.setdefault(link["message_id"], []).append(ContactLinkWithName.from_row(link))

        return [
            MessageWithContactLinks.from_row(r, contact_links=links.get(r["id"], []))
            for r in rows
        ]
    finally:
        conn.close()


def get_history(
    user_id: int, conversation_id: int, limit: Optional[int] = None
) -> List[Dict[str, str]]:
    """Get prior messages as role/content dicts for the assistant.

    Args:
        user_id: Requesting user
        conversation_id: The conversation
        limit: If set, return only the last N messages

    Returns:
        List of message dicts with role and content, oldest first
    """
    conn = get_connection()
    try:
        _assert_owner(conn, user_id, conversation_id)
        if limit:
            rows = conn.execute(
                """SELECT sender, content FROM (
                       SELECT sender, content, id FROM messages
                       WHERE conversation_id = ?
                       ORDER BY id DESC
                       LIMIT ?
                   ) sub ORDER BY id ASC""",
                (conversation_id, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                """SELECT sender, content FROM messages
                   WHERE conversation_id = ?
                   ORDER BY id ASC""",
                (conversation_id,),
            ).fetchall()

        return [{"role": r["sender"], "content": r["content"]} for r in rows]
    finally:
        conn.close()
