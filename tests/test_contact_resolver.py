import pytest

from revoc import aggregation, contact_resolver, contacts_db, conversations_db
from revoc.models import ExtractionResult, PersonCandidate
from revoc.utils.exceptions import AccessDeniedError, ValidationError

from conftest import people


def _message(user_id, text, conversation_id=None, sender="user"):
    if conversation_id is None:
        conversation_id = conversations_db.create_conversation(user_id).id
    return conversations_db.add_message(user_id, conversation_id, sender, text)


def _mention_count(user_id, contact_id):
    counts = {c.id: c.mention_count for c in aggregation.contacts_with_mention_count(user_id)}
    return counts[contact_id]


class TestReconcileMessage:
    def test_unknown_name_is_unresolved_with_context(self, user):
        message = _message(user.id, "Had lunch with Maria from Acme")
        extraction = ExtractionResult.from_payload(people(("Maria", "Acme")))

        result = contact_resolver.reconcile_message(user.id, message.id, extraction)

        assert result.resolved == []
        assert [(c.name, c.context_info, c.matches) for c in result.unresolved] == [("Maria", "Acme", [])]
        assert contacts_db.list_contacts(user.id) == []

    def test_single_exact_match_is_linked(self, user):
        contact = contacts_db.create_contact(user.id, "Maria")
        message = _message(user.id, "Lunch with maria")

        result = contact_resolver.reconcile_message(
            user.id, message.id, ExtractionResult.from_payload(people("MARIA"))
        )

        assert [r.contact.id for r in result.resolved] == [contact.id]
        assert result.links_created == 1
        assert result.unresolved == []

    def test_ambiguous_name_is_unresolved_with_matches(self, user):
        a = contacts_db.create_contact(user.id, "Maria")
        b = contacts_db.create_contact(user.id, "Maria")
        message = _message(user.id, "Lunch with Maria")

        result = contact_resolver.reconcile_message(
            user.id, message.id, [PersonCandidate(name="Maria")]
        )

        assert result.resolved == []
        assert result.unresolved[0].matches == [a.id, b.id]
        assert contacts_db.get_links_for_message(user.id, message.id) == []

    def test_partial_name_does_not_auto_resolve(self, user):
        contacts_db.create_contact(user.id, "Maria Lopez")
        message = _message(user.id, "Lunch with Maria")

        result = contact_resolver.reconcile_message(
            user.id, message.id, [PersonCandidate(name="Maria")]
        )

        assert result.resolved == []
        assert [c.name for c in result.unresolved] == ["Maria"]

    def test_reconciling_same_message_twice_is_idempotent(self, user):
        contact = contacts_db.create_contact(user.id, "Maria")
        message = _message(user.id, "Lunch with Maria")
        candidates = [PersonCandidate(name="Maria")]

        first = contact_resolver.reconcile_message(user.id, message.id, candidates)
        second = contact_resolver.reconcile_message(user.id, message.id, candidates)

        assert first.links_created == 1
        assert second.links_created == 0
        assert _mention_count(user.id, contact.id) == 1

    def test_duplicate_candidates_in_one_extraction_link_once(self, user):
        contacts_db.create_contact(user.id, "Maria")
        message = _message(user.id, "Maria and maria")

        result = contact_resolver.reconcile_message(
            user.id, message.id, [PersonCandidate(name="Maria"), PersonCandidate(name="maria")]
        )

        assert len(result.resolved) == 1

    def test_assistant_messages_are_not_scanned(self, user):
        contacts_db.create_contact(user.id, "Maria")
        reply = _message(user.id, "Say hi to Maria", sender="assistant")

        result = contact_resolver.reconcile_message(
            user.id, reply.id, [PersonCandidate(name="Maria")]
        )

        assert result.resolved == [] and result.unresolved == []

    def test_foreign_message_is_denied(self, user, other_user):
        message = _message(other_user.id, "Lunch with Maria")
        with pytest.raises(AccessDeniedError):
            contact_resolver.reconcile_message(user.id, message.id, [PersonCandidate(name="Maria")])


class TestSaveAsNew:
    def test_maria_scenario(self, user):
        conversation = conversations_db.create_conversation(user.id)
        message = _message(user.id, "Had lunch with Maria from Acme", conversation.id)
        result = contact_resolver.reconcile_message(
            user.id, message.id, ExtractionResult.from_payload(people(("Maria", "Acme")))
        )

        resolution = contact_resolver.save_candidate_as_new(
            user.id, result.unresolved[0], conversation_id=conversation.id
        )

        assert resolution.contact.name == "Maria"
        assert resolution.contact.notes == "Acme"
        assert resolution.message_id == message.id
        links = contacts_db.get_links_for_contact(user.id, resolution.contact.id)
        assert [l.message_id for l in links] == [message.id]

    def test_links_first_mentioning_message(self, user):
        conversation = conversations_db.create_conversation(user.id)
        _message(user.id, "Morning!", conversation.id)
        first = _message(user.id, "Call with TOM later", conversation.id)
        _message(user.id, "Tom again", conversation.id)

        resolution = contact_resolver.save_candidate_as_new(
            user.id, PersonCandidate(name="Tom"), conversation_id=conversation.id
        )

        assert resolution.link.message_id == first.id

    def test_no_mentioning_message_creates_unlinked_contact(self, user):
        conversation = conversations_db.create_conversation(user.id)
        _message(user.id, "Nothing relevant", conversation.id)

        resolution = contact_resolver.save_candidate_as_new(
            user.id, PersonCandidate(name="Zoe"), conversation_id=conversation.id
        )

        assert resolution.link is None
        assert contacts_db.get_links_for_contact(user.id, resolution.contact.id) == []

    def test_explicit_message_id_wins(self, user):
        conversation = conversations_db.create_conversation(user.id)
        _message(user.id, "Maria first", conversation.id)
        later = _message(user.id, "Maria later", conversation.id)

        resolution = contact_resolver.save_candidate_as_new(
            user.id, PersonCandidate(name="Maria"), message_id=later.id
        )

        assert resolution.link.message_id == later.id

    def test_foreign_conversation_creates_nothing(self, user, other_user):
        conversation = conversations_db.create_conversation(other_user.id)
        with pytest.raises(AccessDeniedError):
            contact_resolver.save_candidate_as_new(
                user.id, PersonCandidate(name="Maria"), conversation_id=conversation.id
            )
        assert contacts_db.list_contacts(user.id) == []


class TestMerge:
    def test_merge_links_existing_contact(self, user):
        contact = contacts_db.create_contact(user.id, "Maria Lopez", "Acme")
        conversation = conversations_db.create_conversation(user.id)
        message = _message(user.id, "Lunch with Maria", conversation.id)

        resolution = contact_resolver.merge_candidate(
            user.id, contact.id, PersonCandidate(name="Maria"), conversation_id=conversation.id
        )

        assert resolution.contact == contact
        assert resolution.link.message_id == message.id
        assert resolution.created

    def test_merging_twice_is_a_noop(self, user):
        contact = contacts_db.create_contact(user.id, "Maria Lopez")
        conversation = conversations_db.create_conversation(user.id)
        _message(user.id, "Lunch with Maria", conversation.id)

        contact_resolver.merge_candidate(user.id, contact.id, PersonCandidate(name="Maria"), conversation.id)
        again = contact_resolver.merge_candidate(user.id, contact.id, PersonCandidate(name="Maria"), conversation.id)

        assert not again.created
        assert _mention_count(user.id, contact.id) == 1


def test_remention_scenario(user):
    """A second message naming Maria adds exactly one mention; re-running the first adds none."""
    conversation = conversations_db.create_conversation(user.id)
    first = _message(user.id, "Had lunch with Maria from Acme", conversation.id)
    unresolved = contact_resolver.reconcile_message(
        user.id, first.id, [PersonCandidate(name="Maria", context_info="Acme")]
    ).unresolved
    maria = contact_resolver.save_candidate_as_new(
        user.id, unresolved[0], conversation_id=conversation.id
    ).contact
    assert _mention_count(user.id, maria.id) == 1

    second = _message(user.id, "Maria sent the contract", conversation.id)
    candidates = [PersonCandidate(name="Maria")]

    contact_resolver.reconcile_message(user.id, first.id, candidates)
    assert _mention_count(user.id, maria.id) == 1

    contact_resolver.reconcile_message(user.id, second.id, candidates)
    assert _mention_count(user.id, maria.id) == 2

    contact_resolver.reconcile_message(user.id, second.id, candidates)
    assert _mention_count(user.id, maria.id) == 2


def test_save_as_new_rejects_blank_name(user):
    with pytest.raises(ValidationError):
        contact_resolver.save_candidate_as_new(
            user.id, PersonCandidate.model_construct(name="  ", context_info=None)
        )


def test_message_outside_conversation_is_rejected_before_create(user):
    first = conversations_db.create_conversation(user.id)
    second = conversations_db.create_conversation(user.id)
    elsewhere = _message(user.id, "Maria again", second.id)

    with pytest.raises(ValidationError):
        contact_resolver.save_candidate_as_new(
            user.id, PersonCandidate(name="Maria"), conversation_id=first.id, message_id=elsewhere.id
        )
    assert contacts_db.list_contacts(user.id) == []

    maria = contacts_db.create_contact(user.id, "Maria")
    with pytest.raises(ValidationError):
        contact_resolver.merge_candidate(
            user.id, maria.id, PersonCandidate(name="Maria"),
            conversation_id=first.id, message_id=elsewhere.id,
        )
    assert contacts_db.get_links_for_contact(user.id, maria.id) == []
