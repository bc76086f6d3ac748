"""Session workflow data models.

This module defines the states of the two client-side workflows and the
result object a message send hands back to its caller.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from revoc.contact_resolver import ResolvedMention, UnresolvedCandidate
from revoc.models import Conversation, EventCandidate, Message, TaskCandidate


class SendState(str, Enum):
    """States of the message-send workflow."""
    IDLE = "idle"
    SEND_PENDING = "sendPending"
    SUCCESS = "success"
    FAILURE = "failure"


class CaptureState(str, Enum):
    """States of the capture/transcribe/confirm workflow."""
    IDLE = "idle"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"
    CONFIRM_REVIEW = "confirmReview"
    SEND_PENDING = "sendPending"


class SendResult(BaseModel):
    """Everything one message send produced.

    The user message is always present once the send got past
    validation. When the assistant failed, ``assistant_message`` is None
    and ``assistant_error`` carries the reason; the user message stays
    stored either way.

    Attributes:
        conversation: The conversation the message went to (created if needed)
        user_message: The stored user message
        assistant_message: The stored assistant reply, if the call succeeded
        assistant_error: Error text when the assistant call failed
        resolved: Mentions linked automatically to existing contacts
        unresolved: Person candidates waiting for the user's decision
        events: Calendar event candidates for the user to confirm
        tasks: Task candidates for the user to confirm
    """
    conversation: Conversation
    user_message: Message
    assistant_message: Optional[Message] = None
    assistant_error: Optional[str] = None
    resolved: List[ResolvedMention] = Field(default_factory=list)
    unresolved: List[UnresolvedCandidate] = Field(default_factory=list)
    events: List[EventCandidate] = Field(default_factory=list)
    tasks: List[TaskCandidate] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.assistant_error is None
