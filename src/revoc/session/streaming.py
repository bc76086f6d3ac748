"""Progressive reveal of an assistant reply.

Purely cosmetic: the reply is already stored in full before any prefix
is produced, so stopping consumption early changes nothing else.
"""

import asyncio
from typing import AsyncIterator, Iterator

from revoc.utils.exceptions import ValidationError


def reveal_prefixes(text: str, steps: int = 30) -> Iterator[str]:
    """Yield progressively longer prefixes of text, ending with text itself.

    Each prefix grows by ``max(1, len(text) // steps)`` characters. Empty
    text yields nothing.
    """
    if steps < 1:
        raise ValidationError("steps", "must be at least 1")
    if not text:
        return
    chunk = max(1, len(text) // steps)
    for end in range(chunk, len(text), chunk):
        yield text[:end]
    yield text


async def stream_reply(text: str, interval: float = 0.025, steps: int = 30) -> AsyncIterator[str]:
    """Async variant of reveal_prefixes, pausing ``interval`` seconds between prefixes."""
    first = True
    for prefix in reveal_prefixes(text, steps):
        if not first:
            await asyncio.sleep(interval)
        first = False
        yield prefix
