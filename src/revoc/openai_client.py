"""Shared async OpenAI client.

One client per process, created on first use so importing the package
never requires an API key.
"""

from typing import Optional

from openai import AsyncOpenAI

from revoc.config import config
from revoc.utils.exceptions import MissingConfigError

_client: Optional[AsyncOpenAI] = None


def get_openai_client() -> AsyncOpenAI:
    """Get or create the AsyncOpenAI client singleton.

    Raises:
        MissingConfigError: If OPENAI_API_KEY is not configured
    """
    global _client
    if _client is None:
        api_key = config.get("openai_api_key")
        if not api_key:
            raise MissingConfigError("OPENAI_API_KEY")
        _client = AsyncOpenAI(api_key=api_key)
    return _client


def reset_openai_client() -> None:
    """Drop the cached client so the next call picks up new settings."""
    global _client
    _client = None
