"""Assistant replies, conversation titles and audio transcription.

Thin async wrappers around the OpenAI API. Each raises the matching
``ExternalAPIError`` subclass on failure; callers decide how to degrade.
"""

import asyncio
from typing import Dict, List, Optional, Sequence

from revoc.config import config
from revoc.openai_client import get_openai_client
from revoc.utils.exceptions import AssistantError, TranscriptionError
from revoc.utils.logger import logger
from revoc.utils.text_processing import clean_title

FALLBACK_REPLY = "I'm sorry, I couldn't process that."

_QUESTION_MARKERS = ("what", "why", "how", "when", "where", "who", "can you", "could you")

QUESTION_PROMPT = """You are a helpful personal assistant. The user is asking you a question.
Answer it directly and concisely. Use the earlier messages in the conversation as context when they are relevant."""

ANALYSIS_PROMPT = """You are a personal assistant that helps the user keep track of people, meetings and things to do.
The user is telling you about something that happened or is planned. Briefly acknowledge it, point out any people,
events or tasks worth remembering, and suggest a follow-up only when one is clearly useful."""

TITLE_PROMPT = """Generate a short, descriptive title (maximum 6 words) for this conversation.
Reply with the title only, without quotes.

{transcript}"""


def is_question(text: str) -> bool:
    """Heuristic: ends with '?' or contains a question word."""
    text = (text or "").strip()
    lowered = text.lower()
    return text.endswith("?") or any(marker in lowered for marker in _QUESTION_MARKERS)


def _history_messages(prior_messages: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
    return [
        {"role": m.get("role", "user"), "content": m.get("content", "")}
        for m in prior_messages
        if m.get("content")
    ]


class OpenAIAssistant:
    """Assistant backed by OpenAI chat completions.

    Usable as the ``assistant`` collaborator of MessageSendWorkflow:
    ``await assistant(user_text, prior_messages)`` returns the reply text.
    """

    def __init__(self, model: Optional[str] = None):
        self.model = model or config.openai_model

    async def __call__(self, user_text: str, prior_messages: Sequence[Dict[str, str]] = ()) -> str:
        question = is_question(user_text)
        messages = [{"role": "system", "content": QUESTION_PROMPT if question else ANALYSIS_PROMPT}]
        messages.extend(_history_messages(prior_messages))
        messages.append({"role": "user", "content": user_text})

        try:
            response = await get_openai_client().chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.7 if question else 0.3,
            )
        except Exception as e:
            logger.error(f"Assistant call failed: {e}")
            raise AssistantError(str(e), status_code=getattr(e, "status_code", None))

        content = response.choices[0].message.content
        return content.strip() if content and content.strip() else FALLBACK_REPLY


async def generate_reply(
    user_text: str,
    prior_messages: Sequence[Dict[str, str]] = (),
    timeout: Optional[float] = None,
) -> str:
    """Get an assistant reply, bounded by the ASSISTANT_TIMEOUT setting.

    Raises:
        AssistantError: On API failure or timeout
    """
    timeout = timeout if timeout is not None else config.assistant_timeout
    try:
        return await asyncio.wait_for(OpenAIAssistant()(user_text, prior_messages), timeout=timeout)
    except asyncio.TimeoutError:
        raise AssistantError(f"timed out after {timeout}s")


async def generate_conversation_title(messages: Sequence[Dict[str, str]]) -> str:
    """Suggest a title of at most six words for a conversation.

    Never raises; returns the default title when there is nothing to
    summarise or the call fails.
    """
    fallback = config.default_conversation_title
    if not messages:
        return fallback

    transcript = "\n".join(
        f"{m.get('role', 'user')}: {m.get('content', '')}" for m in messages[:10]
    )
    try:
        response = await get_openai_client().chat.completions.create(
            model=config.openai_model,
            messages=[{"role": "user", "content": TITLE_PROMPT.format(transcript=transcript)}],
            temperature=0.5,
            max_tokens=20,
        )
    except Exception as e:
        logger.warning(f"Title generation failed: {e}")
        return fallback

    title = clean_title(response.choices[0].message.content, fallback=fallback)
    words = title.split()
    if len(words) > 6:
        title = " ".join(words[:6])
    return title


async def transcribe_audio(audio: bytes, filename: str = "recording.webm") -> str:
    """Transcribe recorded audio to text.

    Raises:
        TranscriptionError: If the audio is empty or the API call fails
    """
    if not audio:
        raise TranscriptionError("no audio captured")
    try:
        result = await get_openai_client().audio.transcriptions.create(
            model=config.transcription_model,
            file=(filename, audio),
        )
    except Exception as e:
        logger.error(f"Transcription failed: {e}")
        raise TranscriptionError(str(e), status_code=getattr(e, "status_code", None))

    text = (getattr(result, "text", "") or "").strip()
    logger.info(f"Transcribed {len(audio)} bytes into {len(text)} chars")
    return text
