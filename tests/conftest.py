"""
Test configuration and fixtures.

Every test gets its own SQLite file, so tests never see each other's
rows. External collaborators (extractor, assistant, transcriber, audio
recorder) are replaced by small in-memory fakes.
"""

import os
import tempfile

# Must be set before revoc is imported: the logger reads them at import time
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "revoc-test-logs"))
os.environ.setdefault("OPENAI_API_KEY", "test-key")

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import pytest

from revoc import users_db
from revoc.db import init_db, set_db_path


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture(autouse=True)
def db(tmp_path):
    path = str(tmp_path / "revoc.db")
    set_db_path(path)
    init_db()
    yield path


@pytest.fixture
def user():
    return users_db.create_user("ana@example.com", "Ana")


@pytest.fixture
def other_user():
    return users_db.create_user("ben@example.com", "Ben")


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeExtractor:
    """Returns a fixed payload, raises, or hangs."""

    def __init__(self, payload: Any = None, error: Optional[Exception] = None, delay: float = 0):
        self.payload = payload if payload is not None else {"people": [], "events": [], "tasks": []}
        self.error = error
        self.delay = delay
        self.calls: List[str] = []

    async def __call__(self, text: str) -> Any:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.payload


class FakeAssistant:
    def __init__(self, reply: str = "Noted.", error: Optional[Exception] = None, delay: float = 0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: List[tuple] = []

    async def __call__(self, user_text: str, prior_messages: Sequence[Dict[str, str]] = ()) -> str:
        self.calls.append((user_text, list(prior_messages)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply


class FakeTranscriber:
    def __init__(self, text: str = "Call Maria tomorrow", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[bytes] = []
        self.gate: Optional[asyncio.Event] = None

    async def __call__(self, audio: bytes, filename: str = "recording.webm") -> str:
        self.calls.append(audio)
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error
        return self.text


class FakeRecorder:
    def __init__(self, audio: bytes = b"\x00\x01fake-audio"):
        self.audio = audio
        self.started = 0
        self.stopped = 0
        self.released = 0

    def start(self) -> None:
        self.started += 1

    def stop(self) -> bytes:
        self.stopped += 1
        return self.audio

    def release(self) -> None:
        self.released += 1


def people(*entries) -> Dict[str, Any]:
    """Build an extractor payload: people("Maria", ("Tom", "Acme"))."""
    items = []
    for entry in entries:
        if isinstance(entry, tuple):
            items.append({"name": entry[0], "contextInfo": entry[1]})
        else:
            items.append({"name": entry})
    return {"people": items, "events": [], "tasks": []}


@pytest.fixture
def fake_assistant():
    return FakeAssistant()


@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
def fake_recorder():
    return FakeRecorder()


@pytest.fixture
def fake_transcriber():
    return FakeTranscriber()
