"""Typed candidates produced by the entity extraction adapter.

The extraction model returns loosely shaped JSON: keys vary between
prompts, optional fields go missing, names arrive with stray whitespace
and sometimes the same person is listed twice. ``ExtractionResult.from_payload``
is the single place where that payload is validated and coerced; nothing
downstream ever sees the raw dict.
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from revoc.utils.logger import logger
from revoc.utils.text_processing import fold, normalize_name

_PRIORITIES = {"low", "medium", "high"}


def _clean_optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class PersonCandidate(BaseModel):
    """A person the extraction adapter believes was mentioned."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    context_info: Optional[str] = Field(default=None, alias="contextInfo")

    @field_validator("name", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> str:
        name = normalize_name(str(value) if value is not None else "")
        if not name:
            raise ValueError("name must not be empty")
        return name

    @field_validator("context_info", mode="before")
    @classmethod
    def _context(cls, value: Any) -> Optional[str]:
        return _clean_optional_text(value)


class EventCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    participants: List[str] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, value: Any) -> str:
        title = normalize_name(str(value) if value is not None else "")
        if not title:
            raise ValueError("title must not be empty")
        return title

    @field_validator("description", "location", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return _clean_optional_text(value)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _blank_time(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("participants", mode="before")
    @classmethod
    def _participants(cls, value: Any) -> List[str]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            return []
        names = [normalize_name(str(p)) for p in value if p is not None]
        return [n for n in names if n]


class TaskCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: Optional[str] = None
    assignee: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, value: Any) -> str:
        title = normalize_name(str(value) if value is not None else "")
        if not title:
            raise ValueError("title must not be empty")
        return title

    @field_validator("description", "assignee", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return _clean_optional_text(value)

    @field_validator("due_date", mode="before")
    @classmethod
    def _due_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
            # Models sometimes return a full timestamp for a date field
            return value[:10]
        return value

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        priority = str(value).strip().lower()
        return priority if priority in _PRIORITIES else None


class ExtractionResult(BaseModel):
    """All candidates found in one message."""

    people: List[PersonCandidate] = Field(default_factory=list)
    events: List[EventCandidate] = Field(default_factory=list)
    tasks: List[TaskCandidate] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.people or self.events or self.tasks)

    @classmethod
    def empty(cls) -> "ExtractionResult":
        return cls()

    @classmethod
    def from_payload(cls, payload: Any) -> "ExtractionResult":
        """Coerce an untrusted extraction payload into typed candidates.

        Accepts ``people`` or ``potentialContacts`` for persons, and
        ``events`` / ``tasks`` lists. Entries that fail validation are
        dropped individually. People are de-duplicated by case-folded name,
        keeping the first entry that carries context.

        Args:
            payload: Parsed JSON (anything; non-dicts yield an empty result)

        Returns:
            ExtractionResult with only valid candidates
        """
        if not isinstance(payload, dict):
            return cls.empty()

        raw_people = payload.get("people")
        if raw_people is None:
            raw_people = payload.get("potentialContacts")

        people: Dict[str, PersonCandidate] = {}
        for item in _as_list(raw_people):
            if isinstance(item, str):
                item = {"name": item}
            elif isinstance(item, dict):
                item = {
                    "name": item.get("name"),
                    "contextInfo": item.get("contextInfo",
                                            item.get("context_info", item.get("context"))),
                }
            candidate = _validate(PersonCandidate, item)
            if candidate is None:
                continue
            key = fold(candidate.name)
            existing = people.get(key)
            if existing is None or (existing.context_info is None and candidate.context_info):
                people[key] = candidate

        events = [c for c in (_validate(EventCandidate, i) for i in _as_list(payload.get("events"))) if c]
        tasks = [c for c in (_validate(TaskCandidate, i) for i in _as_list(payload.get("tasks"))) if c]

        return cls(people=list(people.values()), events=events, tasks=tasks)


def _as_list(value: Any) -> Iterable[Any]:
    if isinstance(value, list):
        return value
    return []


def _validate(model: type, item: Any):
    if not isinstance(item, dict):
        return None
    try:
        return model.model_validate(item)
    except ValidationError as e:
        logger.debug(f"Dropping invalid {model.__name__}: {e.error_count()} error(s)")
        return None
    except (TypeError, ValueError) as e:
        logger.debug(f"Dropping invalid {model.__name__}: {e}")
        return None
