"""Read-only views over the conversation/contact graph.

Every function here is a pure function of the stored rows: nothing is
cached between calls and nothing is written, so the same data always
produces the same output. Ties are broken by id wherever counts or
timestamps can be equal.

Usage:
    conversations_for_user(user_id)       # sidebar list
    frequent_contacts(user_id, limit=4)   # home page
    search(user_id, "maria")              # search page
"""

import sqlite3
from typing import Dict, Iterable, List, Optional

from revoc import contacts_db
from revoc.config import config
from revoc.db import check_owner, get_connection
from revoc.models import (
    Contact,
    ContactDetail,
    ContactWithMentionCount,
    ConversationSummary,
    Message,
    SearchResults,
)
from revoc.utils.exceptions import ValidationError
from revoc.utils.text_processing import fold


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

def _summaries(
    conn: sqlite3.Connection,
    user_id: int,
    only_ids: Optional[Iterable[int]] = None,
) -> List[ConversationSummary]:
    conversations = conn.execute(
        "SELECT * FROM conversations WHERE user_id = ?", (user_id,)
    ).fetchall()
    if only_ids is not None:
        wanted = set(only_ids)
        conversations = [c for c in conversations if c["id"] in wanted]

    # Latest message per conversation; id breaks equal timestamps
    last_rows = conn.execute(
        """SELECT id, conversation_id, sender, content, created_at FROM (
               SELECT m.*, ROW_NUMBER() OVER (
                   PARTITION BY m.conversation_id
                   ORDER BY m.created_at DESC, m.id DESC
               ) AS rn
               FROM messages m
               JOIN conversations c ON c.id = m.conversation_id
               WHERE c.user_id = ?
           ) WHERE rn = 1""",
        (user_id,),
    ).fetchall()
    last_by_conversation: Dict[int, Message] = {
        r["conversation_id"]: Message.from_row(r) for r in last_rows
    }

    count_rows = conn.execute(
        """SELECT m.conversation_id, COUNT(DISTINCT cl.contact_id) AS contact_count
           FROM contact_links cl
           JOIN messages m ON m.id = cl.message_id
           JOIN conversations c ON c.id = m.conversation_id
           WHERE c.user_id = ?
           GROUP BY m.conversation_id""",
        (user_id,),
    ).fetchall()
    counts = {r["conversation_id"]: r["contact_count"] for r in count_rows}

    summaries = [
        ConversationSummary.from_row(
            c,
            last_message=last_by_conversation.get(c["id"]),
            contact_count=counts.get(c["id"], 0),
        )
        for c in conversations
    ]

    with_messages = [s for s in summaries if s.last_message is not None]
    without_messages = [s for s in summaries if s.last_message is None]
    with_messages.sort(key=lambda s: (s.last_message.created_at, s.last_message.id), reverse=True)
    without_messages.sort(key=lambda s: (s.created_at, s.id), reverse=True)
    return with_messages + without_messages


def conversations_for_user(user_id: int) -> List[ConversationSummary]:
    """List the user's conversations with last message and contact count.

    Conversations with messages come first, newest last message first.
    Conversations without messages follow, newest created first.
    """
    conn = get_connection()
    try:
        return _summaries(conn, user_id)
    finally:
        conn.close()


def conversation_contacts(user_id: int, conversation_id: int) -> List[ContactWithMentionCount]:
    """Contacts mentioned in one conversation, most mentioned first.

    ``mention_count`` here counts links inside this conversation only.
    """
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT user_id FROM conversations WHERE id = ?", (conversation_id,)
        ).fetchone()
        check_owner("conversation", conversation_id, row["user_id"] if row else None, user_id)
        rows = conn.execute(
            """SELECT ct.*, COUNT(cl.id) AS mention_count
               FROM contact_links cl
               JOIN messages m ON m.id = cl.message_id
               JOIN contacts ct ON ct.id = cl.contact_id
               WHERE m.conversation_id = ? AND ct.user_id = ?
               GROUP BY ct.id
               ORDER BY mention_count DESC, ct.id ASC""",
            (conversation_id, user_id),
        ).fetchall()
        return [ContactWithMentionCount.from_row(r) for r in rows]
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

def frequent_contacts(user_id: int, limit: Optional[int] = None) -> List[ContactWithMentionCount]:
    """Most mentioned contacts across all of the user's conversations.

    Only contacts with at least one mention are returned, sorted by
    mention count descending, then contact id ascending.

    Args:
        user_id: Owner
        limit: Maximum number of contacts (FREQUENT_CONTACTS_LIMIT by default)

    Raises:
        ValidationError: If limit is negative
    """
    if limit is None:
        limit = config.frequent_contacts_limit
    if limit < 0:
        raise ValidationError("limit", "must not be negative")

    conn = get_connection()
    try:
        rows = conn.execute(
            """SELECT ct.*, COUNT(cl.id) AS mention_count
               FROM contacts ct
               JOIN contact_links cl ON cl.contact_id = ct.id
               WHERE ct.user_id = ?
               GROUP BY ct.id
               ORDER BY mention_count DESC, ct.id ASC
               LIMIT ?""",
            (user_id, limit),
        ).fetchall()
        return [ContactWithMentionCount.from_row(r) for r in rows]
    finally:
        conn.close()


def contacts_with_mention_count(user_id: int) -> List[ContactWithMentionCount]:
    """All of the user's contacts with their mention counts, zero included."""
    conn = get_connection()
    try:
        rows = conn.execute(
            """SELECT ct.*, COUNT(cl.id) AS mention_count
               FROM contacts ct
               LEFT JOIN contact_links cl ON cl.contact_id = ct.id
               WHERE ct.user_id = ?
               GROUP BY ct.id
               ORDER BY mention_count DESC, ct.id ASC""",
            (user_id,),
        ).fetchall()
        return [ContactWithMentionCount.from_row(r) for r in rows]
    finally:
        conn.close()


def contact_detail(user_id: int, contact_id: int) -> ContactDetail:
    """A contact together with every message that mentions it."""
    contact = contacts_db.get_contact(user_id, contact_id)
    messages = contacts_db.get_contact_messages(user_id, contact_id)
    return ContactDetail(contact=contact, messages=messages)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

def search(user_id: int, query: str) -> SearchResults:
    """Case-insensitive substring search over conversations and contacts.

    A conversation matches when its title or any of its messages contains
    the query; each conversation appears once. Contacts match on name or
    notes. The two result lists are independent and never ranked
    against each other.

    Returns:
        SearchResults (both lists empty for a blank query)
    """
    needle = fold((query or "").strip())
    if not needle:
        return SearchResults()

    conn = get_connection()
    try:
        conversation_ids = [
            r["id"]
            for r in conn.execute(
                """SELECT DISTINCT c.id
                   FROM conversations c
                   LEFT JOIN messages m ON m.conversation_id = c.id
                   WHERE c.user_id = ?
                     AND (instr(casefold(c.title), ?) > 0
                          OR instr(casefold(m.content), ?) > 0)""",
                (user_id, needle, needle),
            ).fetchall()
        ]
        conversations = _summaries(conn, user_id, conversation_ids) if conversation_ids else []

        contact_rows = conn.execute(
            """SELECT * FROM contacts
               WHERE user_id = ?
                 AND (instr(casefold(name), ?) > 0
                      OR instr(casefold(notes), ?) > 0)
               ORDER BY id ASC""",
            (user_id, needle, needle),
        ).fetchall()
        contacts = [Contact.from_row(r) for r in contact_rows]
    finally:
        conn.close()

    return SearchResults(conversations=conversations, contacts=contacts)
