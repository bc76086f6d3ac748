"""Shared text utilities for contact-name matching and highlighting.

Two kinds of name comparison are used on purpose:

- **exact** (case-insensitive equality) decides whether an extracted
  candidate auto-resolves to a stored contact;
- **substring** (case-insensitive containment) is used by search, by
  locating the message that mentioned a newly saved contact, and by
  mention highlighting.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_name(name: Optional[str]) -> str:
    """Trim a display name and collapse internal runs of whitespace."""
    if not name:
        return ""
    return _WHITESPACE_RE.sub(" ", name).strip()


def fold(text: Optional[str]) -> str:
    """Case-fold text for case-insensitive comparison."""
    return (text or "").casefold()


def names_equal(left: Optional[str], right: Optional[str]) -> bool:
    """Case-insensitive exact equality of two names (after normalization)."""
    return fold(normalize_name(left)) == fold(normalize_name(right))


def contains_name(text: Optional[str], name: Optional[str]) -> bool:
    """Case-insensitive substring test. An empty name never matches."""
    needle = fold(normalize_name(name))
    if not needle:
        return False
    return needle in fold(text)


# ---------------------------------------------------------------------------
# Mention highlighting
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Segment:
    """A run of message text, attributed to a contact when it is a mention."""

    text: str
    contact_id: Optional[int] = None

    @property
    def is_contact(self) -> bool:
        return self.contact_id is not None


def segment_mentions(text: str, contacts: Iterable[Tuple[int, str]]) -> List[Segment]:
    """Split text into plain and mention segments for the given contacts.

    Names are applied longest first, so a short name can never claim part
    of a longer name that contains it ("Jon" inside "Jonathan Smith").
    Already-attributed segments are never split again, which keeps the
    mentions non-overlapping. Matching is case-insensitive and the original
    casing of the text is preserved.

    Args:
        text: Message content to segment
        contacts: (contact_id, contact_name) pairs; duplicates are ignored

    Returns:
        Segments whose texts concatenate back to ``text``
    """
    if not text:
        return []

    seen_ids = set()
    ordered: List[Tuple[int, str]] = []
    for contact_id, name in contacts:
        name = normalize_name(name)
        if not name or contact_id in seen_ids:
            continue
        seen_ids.add(contact_id)
        ordered.append((contact_id, name))
    ordered.sort(key=lambda pair: (-len(pair[1]), pair[0]))

    segments = [Segment(text)]
    for contact_id, name in ordered:
        pattern = re.compile(f"({re.escape(name)})", re.IGNORECASE)
        next_segments: List[Segment] = []
        for segment in segments:
            if segment.is_contact:
                next_segments.append(segment)
                continue
            for index, part in enumerate(pattern.split(segment.text)):
                if not part:
                    continue
                # re.split puts captured groups at odd indices
                if index % 2 == 1:
                    next_segments.append(Segment(part, contact_id))
                else:
                    next_segments.append(Segment(part))
        segments = next_segments

    return segments


def clean_title(raw: Optional[str], max_length: int = 60, fallback: str = "New Conversation") -> str:
    """Tidy a generated conversation title.

    Strips surrounding quotes and truncates to max_length characters with
    an ellipsis. Falls back when nothing usable is left.
    """
    title = normalize_name(raw)
    title = title.strip("\"'").strip()
    if len(title) > max_length:
        title = title[:max_length - 1] + "…"
    return title or fallback
