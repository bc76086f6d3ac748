"""Client-side session workflows.

This package holds the two workflows a chat client drives: sending a
message (with assistant reply and contact reconciliation) and capturing
a voice message through transcription and review.
"""

from .models import CaptureState, SendResult, SendState
from .workflow import Assistant, MessageSendWorkflow
from .capture import CaptureWorkflow, Recorder, Transcriber
from .streaming import reveal_prefixes, stream_reply

__all__ = [
    "SendState",
    "CaptureState",
    "SendResult",
    "Assistant",
    "MessageSendWorkflow",
    "CaptureWorkflow",
    "Recorder",
    "Transcriber",
    "reveal_prefixes",
    "stream_reply",
]
