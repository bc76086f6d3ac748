import pytest

from revoc import aggregation, contacts_db, conversations_db
from revoc.models import Sender
from revoc.session import MessageSendWorkflow, SendState
from revoc.utils.exceptions import AccessDeniedError, AssistantError, ValidationError

from conftest import FakeAssistant, FakeExtractor, people


def _workflow(user, assistant=None, extractor=None, **kwargs):
    return MessageSendWorkflow(
        user.id,
        assistant=assistant or FakeAssistant(),
        extractor=extractor or FakeExtractor(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_first_send_creates_conversation(user):
    workflow = _workflow(user)
    assert workflow.state == SendState.IDLE

    result = await workflow.send("Hello there")

    assert workflow.state == SendState.SUCCESS
    assert result.conversation.title == "New Conversation"
    assert workflow.conversation_id == result.conversation.id
    assert result.user_message.sender == Sender.USER
    assert result.assistant_message.content == "Noted."
    stored = conversations_db.get_messages(user.id, result.conversation.id)
    assert [m.sender for m in stored] == [Sender.USER, Sender.ASSISTANT]


@pytest.mark.asyncio
async def test_following_sends_reuse_conversation_and_pass_history(user):
    assistant = FakeAssistant()
    workflow = _workflow(user, assistant=assistant)

    first = await workflow.send("One")
    second = await workflow.send("Two")

    assert first.conversation.id == second.conversation.id
    assert assistant.calls[1] == (
        "Two",
        [{"role": "user", "content": "One"}, {"role": "assistant", "content": "Noted."}],
    )


@pytest.mark.asyncio
async def test_blank_text_rejected_without_side_effects(user):
    workflow = _workflow(user)
    with pytest.raises(ValidationError):
        await workflow.send("   ")
    assert workflow.state == SendState.IDLE
    assert conversations_db.list_conversations(user.id) == []


@pytest.mark.asyncio
async def test_maria_candidate_surfaced(user):
    workflow = _workflow(user, extractor=FakeExtractor(people(("Maria", "Acme"))))

    result = await workflow.send("Had lunch with Maria from Acme")

    assert [(c.name, c.context_info) for c in result.unresolved] == [("Maria", "Acme")]
    assert contacts_db.list_contacts(user.id) == []


@pytest.mark.asyncio
async def test_known_contact_linked_to_user_message_only(user):
    maria = contacts_db.create_contact(user.id, "Maria")
    extractor = FakeExtractor(people("Maria"))
    workflow = _workflow(user, assistant=FakeAssistant("Say hi to Maria!"), extractor=extractor)

    result = await workflow.send("Lunch with Maria")

    assert extractor.calls == ["Lunch with Maria"]
    assert [r.contact.id for r in result.resolved] == [maria.id]
    assert [l.message_id for l in contacts_db.get_links_for_contact(user.id, maria.id)] == [
        result.user_message.id
    ]


@pytest.mark.asyncio
async def test_assistant_failure_keeps_user_message(user):
    maria = contacts_db.create_contact(user.id, "Maria")
    workflow = _workflow(
        user,
        assistant=FakeAssistant(error=AssistantError("upstream 500")),
        extractor=FakeExtractor(people("Maria")),
    )

    result = await workflow.send("Lunch with Maria")

    assert workflow.state == SendState.FAILURE
    assert not result.succeeded
    assert "upstream 500" in result.assistant_error
    assert result.assistant_message is None
    stored = conversations_db.get_messages(user.id, result.conversation.id)
    assert [m.id for m in stored] == [result.user_message.id]
    counts = {c.id: c.mention_count for c in aggregation.contacts_with_mention_count(user.id)}
    assert counts[maria.id] == 1


@pytest.mark.asyncio
async def test_assistant_timeout_is_a_failure(user):
    workflow = _workflow(user, assistant=FakeAssistant(delay=1), assistant_timeout=0.01)

    result = await workflow.send("Hello")

    assert workflow.state == SendState.FAILURE
    assert "timed out" in result.assistant_error
    assert result.user_message.content == "Hello"


@pytest.mark.asyncio
async def test_extraction_failure_does_not_fail_send(user):
    workflow = _workflow(user, extractor=FakeExtractor(error=RuntimeError("bad json")))

    result = await workflow.send("Lunch with Maria")

    assert workflow.state == SendState.SUCCESS
    assert result.unresolved == [] and result.resolved == []


@pytest.mark.asyncio
async def test_events_and_tasks_surfaced(user):
    payload = {
        "people": [],
        "events": [{"title": "Lunch", "start_time": "2025-03-01T12:00:00"}],
        "tasks": [{"title": "Send deck", "due_date": "2025-03-02", "priority": "high"}],
    }
    result = await _workflow(user, extractor=FakeExtractor(payload)).send("Lunch Saturday, send deck")

    assert [e.title for e in result.events] == ["Lunch"]
    assert [(t.title, t.priority) for t in result.tasks] == [("Send deck", "high")]


@pytest.mark.asyncio
async def test_foreign_conversation_denied(user, other_user):
    theirs = conversations_db.create_conversation(other_user.id)
    workflow = _workflow(user, conversation_id=theirs.id)

    with pytest.raises(AccessDeniedError):
        await workflow.send("Hello")
    assert workflow.state == SendState.FAILURE


@pytest.mark.asyncio
async def test_reset_returns_to_idle(user):
    workflow = _workflow(user)
    await workflow.send("Hello")
    workflow.reset()
    assert workflow.state == SendState.IDLE


@pytest.mark.asyncio
async def test_malformed_event_keeps_people_and_send_succeeds(user):
    payload = {"people": [{"name": "Maria"}], "events": [{"title": "Sync", "participants": 5}]}
    workflow = _workflow(user, extractor=FakeExtractor(payload))

    result = await workflow.send("Sync with Maria")

    assert workflow.state == SendState.SUCCESS
    assert [c.name for c in result.unresolved] == ["Maria"]
    assert [(e.title, e.participants) for e in result.events] == [("Sync", [])]

    await workflow.send("Another one")
    assert workflow.state == SendState.SUCCESS


@pytest.mark.asyncio
async def test_reconciliation_error_ends_in_failure(user, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("database is locked")

    monkeypatch.setattr("revoc.contact_resolver.reconcile_message", broken)
    workflow = _workflow(user, extractor=FakeExtractor(people("Maria")))

    with pytest.raises(RuntimeError):
        await workflow.send("Lunch with Maria")

    assert workflow.state == SendState.FAILURE
    assert len(conversations_db.get_messages(user.id, workflow.conversation_id)) == 2
    workflow.reset()
    assert workflow.state == SendState.IDLE
