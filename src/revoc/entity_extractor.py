"""LLM-based extraction of people, calendar events and tasks from messages.

The extractor is an external collaborator of the reconciliation engine:
it may be slow, may return nothing, and may be wrong (hallucinated or
partial names). The engine only ever sees its output through
``extract_candidates``, which

- bounds the call with a timeout,
- turns any failure or timeout into an empty result, and
- validates the loosely-typed JSON into ``ExtractionResult``.

Usage:
    result = await extract_candidates("Had lunch with Maria from Acme")
    result.people  # [PersonCandidate(name='Maria', context_info='Acme')]
"""

import asyncio
import json
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Optional

from revoc.config import config
from revoc.models import ExtractionResult
from revoc.openai_client import get_openai_client
from revoc.utils.exceptions import ExtractionError
from revoc.utils.logger import logger

# An extractor takes message text and returns a raw payload shaped like
# {"people": [...], "events": [...], "tasks": [...]}. It may raise.
Extractor = Callable[[str], Awaitable[Any]]


# ---------------------------------------------------------------------------
# Extraction prompts
# ---------------------------------------------------------------------------

_PEOPLE_PROMPT = """Extract every person mentioned by name in the text below. For each person include any context the text gives about them (role, company, relationship).

Text: "{text}"

Respond with JSON only:
{{"people": [{{"name": "Full Name", "contextInfo": "role, company, etc."}}]}}

If nobody is named, return {{"people": []}}."""

_EVENTS_PROMPT = """Extract calendar events or meetings mentioned in the text below. Today is {today}; convert relative dates ("tomorrow", "next Tuesday") to absolute ones.
If no time is given use 09:00:00. If no end time or duration is given assume one hour.

Text: "{text}"

Respond with JSON only:
{{"events": [{{"title": "Event title", "description": "Short description", "start_time": "YYYY-MM-DDTHH:MM:SS", "end_time": "YYYY-MM-DDTHH:MM:SS", "location": "optional", "participants": ["Person"]}}]}}

If there are no events, return {{"events": []}}."""

_TASKS_PROMPT = """Extract tasks, to-dos and action items from the text below. Today is {today}; convert relative dates to absolute ones.
Infer priority from the wording ("urgent" = high, "whenever you can" = low) and note who the task is assigned to when the text says so.

Text: "{text}"

Respond with JSON only:
{{"tasks": [{{"title": "Task title", "description": "Short description", "due_date": "YYYY-MM-DD", "priority": "low|medium|high", "assignee": "Person"}}]}}

If there are no tasks, return {{"tasks": []}}."""


class OpenAIEntityExtractor:
    """Extractor backed by OpenAI chat completions in JSON mode.

    People, events and tasks are requested concurrently with one prompt
    each. If one of the three calls fails, its list is left empty and
    the others are still returned; if all three fail, ExtractionError is
    raised.
    """

    def __init__(self, model: Optional[str] = None):
        self.model = model or config.openai_model

    async def __call__(self, text: str) -> Dict[str, Any]:
        today = date.today().isoformat()
        kinds = {
            "people": _PEOPLE_PROMPT.format(text=text, today=today),
            "events": _EVENTS_PROMPT.format(text=text, today=today),
            "tasks": _TASKS_PROMPT.format(text=text, today=today),
        }
        results = await asyncio.gather(
            *(self._detect(kind, prompt) for kind, prompt in kinds.items()),
            return_exceptions=True,
        )

        payload: Dict[str, Any] = {}
        failures = 0
        for kind, result in zip(kinds, results):
            if isinstance(result, BaseException):
                failures += 1
                logger.warning(f"{kind} extraction failed: {result}")
                payload[kind] = []
            else:
                payload[kind] = result.get(kind, [])

        if failures == len(kinds):
            raise ExtractionError("all extraction calls failed")
        return payload

    async def _detect(self, kind: str, prompt: str) -> Dict[str, Any]:
        client = get_openai_client()
        response = await client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.1,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content
        if not content:
            return {kind: []}
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise ExtractionError(f"{kind} extraction returned invalid JSON: {e}")
        return parsed if isinstance(parsed, dict) else {kind: []}


_default_extractor: Optional[Extractor] = None


def get_default_extractor() -> Extractor:
    global _default_extractor
    if _default_extractor is None:
        _default_extractor = OpenAIEntityExtractor()
    return _default_extractor


async def extract_candidates(
    text: str,
    extractor: Optional[Extractor] = None,
    timeout: Optional[float] = None,
) -> ExtractionResult:
    """Run the extractor on text and return validated candidates.

    Never raises: an extractor exception, a timeout or a malformed
    payload all produce an empty ExtractionResult.

    Args:
        text: Message text to analyse
        extractor: Extraction callable (defaults to OpenAIEntityExtractor)
        timeout: Seconds to wait (defaults to the EXTRACTION_TIMEOUT setting)

    Returns:
        ExtractionResult (possibly empty)
    """
    if not text or not text.strip():
        return ExtractionResult.empty()

    extractor = extractor or get_default_extractor()
    timeout = timeout if timeout is not None else config.extraction_timeout

    try:
        payload = await asyncio.wait_for(extractor(text), timeout=timeout)
        result = ExtractionResult.from_payload(payload)
    except asyncio.TimeoutError:
        logger.warning(f"Entity extraction timed out after {timeout}s")
        return ExtractionResult.empty()
    except Exception as e:
        logger.error(f"Entity extraction failed: {e}")
        return ExtractionResult.empty()

    logger.debug(
        f"Extracted {len(result.people)} people, {len(result.events)} events, "
        f"{len(result.tasks)} tasks"
    )
    return result
