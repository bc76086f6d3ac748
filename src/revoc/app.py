"""Flask JSON API for Revoc.

The caller identifies itself with the ``X-User-Id`` header; every route
acts on that user's data only. Errors raised by the core map to:

    400  ValidationError (and malformed request bodies)
    401  missing or unknown X-User-Id
    403  AccessDeniedError
    404  NotFoundError
    502  external service failure (assistant, transcription)

Run locally with ``python -m revoc.app``.
"""

import traceback
from datetime import date, datetime
from typing import Any, Optional

from flask import Blueprint, Flask, current_app, g, jsonify, request
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from revoc import (
    aggregation,
    calendar_db,
    contact_resolver,
    contacts_db,
    conversations_db,
    tasks_db,
    users_db,
)
from revoc.assistant import generate_conversation_title, transcribe_audio
from revoc.config import config
from revoc.db import init_db
from revoc.models import PersonCandidate
from revoc.session import MessageSendWorkflow
from revoc.utils.exceptions import (
    AccessDeniedError,
    ExternalAPIError,
    NotFoundError,
    ValidationError,
)
from revoc.utils.logger import logger

api = Blueprint("api", __name__)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class EventIn(BaseModel):
    title: str
    start_time: datetime
    end_time: Optional[datetime] = None
    description: Optional[str] = None
    all_day: bool = False
    location: Optional[str] = None
    message_id: Optional[int] = None
    conversation_id: Optional[int] = None


class TaskIn(BaseModel):
    title: str
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: Optional[str] = None
    assigned_to: Optional[str] = None
    message_id: Optional[int] = None
    conversation_id: Optional[int] = None


class CandidateIn(PersonCandidate):
    conversation_id: Optional[int] = None
    message_id: Optional[int] = None


class MergeIn(CandidateIn):
    contact_id: int


class LinkIn(BaseModel):
    contact_id: int
    message_id: int
    relationship: str = Field(default="mentioned")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [_dump(v) for v in value]
    return value


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("body", "must be a JSON object")
    return data


def _user_id() -> int:
    return g.user_id


@api.before_request
def load_user():
    if request.endpoint == "api.health":
        return None
    raw = request.headers.get("X-User-Id", "")
    try:
        user_id = int(raw)
    except ValueError:
        return jsonify({"error": "Missing or invalid X-User-Id header"}), 401
    try:
        users_db.get_user(user_id)
    except NotFoundError:
        return jsonify({"error": "Unknown user"}), 401
    g.user_id = user_id
    return None


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

@api.errorhandler(ValidationError)
def handle_validation(e: ValidationError):
    return jsonify({"error": e.message, "field": e.field}), 400


@api.errorhandler(PydanticValidationError)
def handle_bad_body(e: PydanticValidationError):
    errors = e.errors()
    field = ".".join(str(p) for p in errors[0]["loc"]) if errors else "body"
    return jsonify({"error": f"Invalid {field}", "field": field}), 400


@api.errorhandler(NotFoundError)
def handle_not_found(e: NotFoundError):
    return jsonify({"error": e.message}), 404


@api.errorhandler(AccessDeniedError)
def handle_access_denied(e: AccessDeniedError):
    return jsonify({"error": e.message}), 403


@api.errorhandler(ExternalAPIError)
def handle_external(e: ExternalAPIError):
    logger.error(f"External service error: {e}\n{traceback.format_exc()}")
    return jsonify({"error": e.message, "service": e.service}), 502


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@api.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "up"}), 200


# ---------------------------------------------------------------------------
# Conversations and messages
# ---------------------------------------------------------------------------

@api.route("/api/conversations", methods=["GET"])
def list_conversations():
    return jsonify(_dump(aggregation.conversations_for_user(_user_id()))), 200


@api.route("/api/conversations", methods=["POST"])
def create_conversation():
    data = _body()
    conversation = conversations_db.create_conversation(_user_id(), data.get("title"))
    return jsonify(_dump(conversation)), 201


@api.route("/api/conversations/<int:conversation_id>", methods=["GET"])
def get_conversation(conversation_id: int):
    """Conversation with its messages, links and highlight segments.

    Response:
        {
            "conversation": {...},
            "messages": [
                {"id": 1, "content": "...", "contact_links": [...],
                 "segments": [{"text": "Had lunch with ", "contact_id": null},
                              {"text": "Maria", "contact_id": 3}]}
            ]
        }
    """
    user_id = _user_id()
    conversation = conversations_db.get_conversation(user_id, conversation_id)
    messages = []
    for message in conversations_db.get_messages(user_id, conversation_id):
        item = _dump(message)
        item["segments"] = [
            {"text": s.text, "contact_id": s.contact_id} for s in message.segments()
        ]
        messages.append(item)
    return jsonify({"conversation": _dump(conversation), "messages": messages}), 200


@api.route("/api/conversations/<int:conversation_id>", methods=["PATCH"])
def rename_conversation(conversation_id: int):
    data = _body()
    conversation = conversations_db.rename_conversation(
        _user_id(), conversation_id, data.get("title") or ""
    )
    return jsonify(_dump(conversation)), 200


@api.route("/api/conversations/<int:conversation_id>/contacts", methods=["GET"])
def conversation_contacts(conversation_id: int):
    contacts = aggregation.conversation_contacts(_user_id(), conversation_id)
    return jsonify(_dump(contacts)), 200


@api.route("/api/conversations/<int:conversation_id>/generate-title", methods=["POST"])
async def generate_title(conversation_id: int):
    user_id = _user_id()
    history = conversations_db.get_history(user_id, conversation_id)
    title = await current_app.config["REVOC_TITLE_GENERATOR"](history)
    conversation = conversations_db.rename_conversation(user_id, conversation_id, title)
    return jsonify(_dump(conversation)), 200


@api.route("/api/messages", methods=["POST"])
async def send_message():
    """Send a user message.

    Request body:
        {
            "content": "Had lunch with Maria from Acme",
            "conversation_id": 12  # optional, a new conversation is created if missing
        }

    Response (201, or 502 when the assistant failed; the user message is
    stored in both cases):
        {
            "conversation": {...},
            "user_message": {...},
            "assistant_message": {...} | null,
            "assistant_error": null | "...",
            "resolved": [...],
            "unresolved": [{"name": "Maria", "contextInfo": "Acme", "matches": []}],
            "events": [...],
            "tasks": [...]
        }
    """
    data = _body()
    workflow = MessageSendWorkflow(
        _user_id(),
        conversation_id=data.get("conversation_id"),
        assistant=current_app.config.get("REVOC_ASSISTANT"),
        extractor=current_app.config.get("REVOC_EXTRACTOR"),
    )
    result = await workflow.send(data.get("content") or "")
    status = 201 if result.succeeded else 502
    return jsonify(_dump(result)), status


@api.route("/api/transcribe", methods=["POST"])
async def transcribe():
    """Transcribe uploaded audio (multipart field 'audio' or a raw body)."""
    upload = request.files.get("audio")
    if upload is not None:
        audio, filename = upload.read(), upload.filename or "recording.webm"
    else:
        audio, filename = request.get_data(), "recording.webm"
    if not audio:
        raise ValidationError("audio", "no audio uploaded")

    transcriber = current_app.config["REVOC_TRANSCRIBER"]
    text = await transcriber(audio, filename)
    return jsonify({"text": text}), 200


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

@api.route("/api/contacts", methods=["GET"])
def list_contacts():
    return jsonify(_dump(aggregation.contacts_with_mention_count(_user_id()))), 200


@api.route("/api/contacts", methods=["POST"])
def create_contact():
    data = _body()
    contact = contacts_db.create_contact(_user_id(), data.get("name") or "", data.get("notes"))
    return jsonify(_dump(contact)), 201


@api.route("/api/contacts/frequent", methods=["GET"])
def frequent_contacts():
    limit = request.args.get("limit", type=int)
    return jsonify(_dump(aggregation.frequent_contacts(_user_id(), limit))), 200


@api.route("/api/contacts/<int:contact_id>", methods=["GET"])
def get_contact(contact_id: int):
    return jsonify(_dump(aggregation.contact_detail(_user_id(), contact_id))), 200


@api.route("/api/contacts/<int:contact_id>", methods=["PATCH"])
def update_contact(contact_id: int):
    data = _body()
    contact = contacts_db.update_contact(
        _user_id(), contact_id, name=data.get("name"), notes=data.get("notes")
    )
    return jsonify(_dump(contact)), 200


@api.route("/api/candidates/save", methods=["POST"])
def save_candidate():
    """Save an unresolved candidate as a new contact and link its mention."""
    body = CandidateIn.model_validate(_body())
    resolution = contact_resolver.save_candidate_as_new(
        _user_id(), body, conversation_id=body.conversation_id, message_id=body.message_id
    )
    return jsonify(_dump(resolution)), 201


@api.route("/api/candidates/merge", methods=["POST"])
def merge_candidate():
    """Link an unresolved candidate's mention to an existing contact."""
    body = MergeIn.model_validate(_body())
    resolution = contact_resolver.merge_candidate(
        _user_id(), body.contact_id, body,
        conversation_id=body.conversation_id, message_id=body.message_id,
    )
    return jsonify(_dump(resolution)), 200


@api.route("/api/contact-links", methods=["POST"])
def create_contact_link():
    body = LinkIn.model_validate(_body())
    link, created = contacts_db.link_contact_message(
        _user_id(), body.contact_id, body.message_id, body.relationship
    )
    return jsonify(_dump(link)), 201 if created else 200


@api.route("/api/search", methods=["GET"])
def search():
    return jsonify(_dump(aggregation.search(_user_id(), request.args.get("q", "")))), 200


# ---------------------------------------------------------------------------
# Calendar events
# ---------------------------------------------------------------------------

def _parse_datetime_arg(name: str) -> Optional[datetime]:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(name, "must be an ISO-8601 timestamp")


@api.route("/api/calendar-events", methods=["GET"])
def list_events():
    events = calendar_db.list_events(
        _user_id(), start=_parse_datetime_arg("start"), end=_parse_datetime_arg("end")
    )
    return jsonify(_dump(events)), 200


@api.route("/api/calendar-events", methods=["POST"])
def create_event():
    body = EventIn.model_validate(_body())
    event = calendar_db.create_event(_user_id(), **body.model_dump())
    return jsonify(_dump(event)), 201


@api.route("/api/calendar-events/<int:event_id>", methods=["GET"])
def get_event(event_id: int):
    return jsonify(_dump(calendar_db.get_event(_user_id(), event_id))), 200


@api.route("/api/calendar-events/<int:event_id>", methods=["PATCH"])
def update_event(event_id: int):
    return jsonify(_dump(calendar_db.update_event(_user_id(), event_id, _body()))), 200


@api.route("/api/calendar-events/<int:event_id>", methods=["DELETE"])
def delete_event(event_id: int):
    calendar_db.delete_event(_user_id(), event_id)
    return "", 204


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

def _parse_date_arg(name: str) -> Optional[date]:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValidationError(name, "must be an ISO-8601 date")


@api.route("/api/tasks", methods=["GET"])
def list_tasks():
    tasks = tasks_db.list_tasks(
        _user_id(),
        status=request.args.get("status") or None,
        due_from=_parse_date_arg("due_from"),
        due_to=_parse_date_arg("due_to"),
    )
    return jsonify(_dump(tasks)), 200


@api.route("/api/tasks", methods=["POST"])
def create_task():
    body = TaskIn.model_validate(_body())
    task = tasks_db.create_task(_user_id(), **body.model_dump())
    return jsonify(_dump(task)), 201


@api.route("/api/tasks/<int:task_id>", methods=["GET"])
def get_task(task_id: int):
    return jsonify(_dump(tasks_db.get_task(_user_id(), task_id))), 200


@api.route("/api/tasks/<int:task_id>", methods=["PATCH"])
def update_task(task_id: int):
    return jsonify(_dump(tasks_db.update_task(_user_id(), task_id, _body()))), 200


@api.route("/api/tasks/<int:task_id>/complete", methods=["POST"])
def complete_task(task_id: int):
    return jsonify(_dump(tasks_db.complete_task(_user_id(), task_id))), 200


@api.route("/api/tasks/<int:task_id>", methods=["DELETE"])
def delete_task(task_id: int):
    tasks_db.delete_task(_user_id(), task_id)
    return "", 204


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(assistant=None, extractor=None, transcriber=None, title_generator=None) -> Flask:
    """Build the Flask app and make sure the database tables exist.

    Args:
        assistant: Reply callable for MessageSendWorkflow (OpenAI by default)
        extractor: Entity extraction callable (OpenAI by default)
        transcriber: ``async (audio, filename) -> text`` (Whisper by default)
        title_generator: ``async (history) -> title`` (OpenAI by default)
    """
    init_db()
    app = Flask(__name__)
    app.config["REVOC_ASSISTANT"] = assistant
    app.config["REVOC_EXTRACTOR"] = extractor
    app.config["REVOC_TRANSCRIBER"] = transcriber or transcribe_audio
    app.config["REVOC_TITLE_GENERATOR"] = title_generator or generate_conversation_title
    app.register_blueprint(api)
    logger.info("Revoc API ready")
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=8765,
                     debug=True if config.log_level == "DEBUG" else False)
