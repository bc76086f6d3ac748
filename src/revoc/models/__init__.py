"""Pydantic v2 models for Revoc.

Records mirror the SQLite tables (users, contacts, conversations,
messages, contact links, calendar events, tasks) plus the read-only
views assembled from them. Candidates are the validated form of the
extraction adapter's output.
"""

from .candidates import EventCandidate, ExtractionResult, PersonCandidate, TaskCandidate
from .records import (
    CalendarEvent,
    Contact,
    ContactDetail,
    ContactLink,
    ContactLinkWithName,
    ContactWithMentionCount,
    Conversation,
    ConversationSummary,
    Message,
    MessageWithContactLinks,
    Relationship,
    Role,
    SearchResults,
    Sender,
    Task,
    User,
)

__all__ = [
    # Graph records
    "User",
    "Role",
    "Contact",
    "Conversation",
    "Message",
    "Sender",
    "ContactLink",
    "ContactLinkWithName",
    "MessageWithContactLinks",
    "Relationship",
    # Views
    "ContactWithMentionCount",
    "ConversationSummary",
    "ContactDetail",
    "SearchResults",
    # Calendar / tasks
    "CalendarEvent",
    "Task",
    # Extraction candidates
    "PersonCandidate",
    "EventCandidate",
    "TaskCandidate",
    "ExtractionResult",
]
