"""Persisted records and the derived views built from them.

Every record mirrors one SQLite table. Instances are read-only
projections of what the store holds; mutations always go through the
``*_db`` modules.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from revoc.utils.text_processing import Segment, segment_mentions


class Role(str, Enum):
    """User roles."""
    USER = "user"
    ADMIN = "admin"


class Sender(str, Enum):
    """Who wrote a message."""
    USER = "user"
    ASSISTANT = "assistant"


class Relationship(str, Enum):
    """How a contact relates to a message it is linked to."""
    MENTIONED = "mentioned"


class Record(BaseModel):
    """Base for table-backed models."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    @classmethod
    def from_row(cls, row: Mapping[str, Any], **extra: Any):
        """Build a model from a ``sqlite3.Row`` (or any mapping)."""
        data = dict(row)
        data.update(extra)
        return cls.model_validate(data)


# =============================================================================
# Core graph
# =============================================================================

class User(Record):
    id: int
    email: str
    display_name: str
    role: Role = Role.USER
    created_at: datetime


class Contact(Record):
    id: int
    user_id: int
    name: str
    notes: Optional[str] = None
    created_at: datetime


class Conversation(Record):
    id: int
    user_id: int
    title: str
    created_at: datetime


class Message(Record):
    id: int
    conversation_id: int
    sender: Sender
    content: str
    created_at: datetime


class ContactLink(Record):
    id: int
    contact_id: int
    message_id: int
    relationship: Relationship = Relationship.MENTIONED
    created_at: datetime


class ContactLinkWithName(ContactLink):
    contact_name: str


class MessageWithContactLinks(Message):
    """A message together with the contacts linked to it."""

    contact_links: List[ContactLinkWithName] = Field(default_factory=list)

    def segments(self) -> List[Segment]:
        """Split the content into plain text and contact mentions."""
        return segment_mentions(
            self.content,
            [(link.contact_id, link.contact_name) for link in self.contact_links],
        )


# =============================================================================
# Derived views
# =============================================================================

class ContactWithMentionCount(Contact):
    mention_count: int = 0


class ConversationSummary(Conversation):
    """A conversation with its most recent message and distinct contact count."""

    last_message: Optional[Message] = None
    contact_count: int = 0

    @property
    def sort_timestamp(self) -> datetime:
        if self.last_message is not None:
            return self.last_message.created_at
        return self.created_at


class ContactDetail(BaseModel):
    contact: Contact
    messages: List[Message] = Field(default_factory=list)


class SearchResults(BaseModel):
    """Conversation and contact hits; the two lists are never ranked together."""

    conversations: List[ConversationSummary] = Field(default_factory=list)
    contacts: List[Contact] = Field(default_factory=list)


# =============================================================================
# Calendar events and tasks
# =============================================================================

class CalendarEvent(Record):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    all_day: bool = False
    location: Optional[str] = None
    message_id: Optional[int] = None
    conversation_id: Optional[int] = None
    created_at: datetime


class Task(Record):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: Optional[str] = None
    completed: bool = False
    completed_at: Optional[datetime] = None
    message_id: Optional[int] = None
    conversation_id: Optional[int] = None
    assigned_to: Optional[str] = None
    created_at: datetime
