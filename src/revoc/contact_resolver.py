"""Contact resolver: turns extracted person candidates into contact links.

This is the bridge between the extraction adapter and the contact graph.
For one stored message it decides, per candidate, whether the mention
can be attached to an existing contact without asking the user:

1. Look up the user's contacts whose name equals the candidate name
   ignoring case (exact, not substring).
2. Exactly one match: the candidate is *resolved* and linked to the
   message. The link is idempotent, so reconciling the same message again
   never adds a second link.
3. Zero or several matches: the candidate is *unresolved* and returned
   to the caller, who asks the user to save it as a new contact or merge
   it into an existing one.

The resolver never creates contacts on its own; only
``save_candidate_as_new`` does, and only on explicit user request.
"""

from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from revoc import contacts_db, conversations_db
from revoc.models import (
    Contact,
    ContactLink,
    ExtractionResult,
    Message,
    PersonCandidate,
    Sender,
)
from revoc.utils.exceptions import ValidationError
from revoc.utils.logger import logger
from revoc.utils.text_processing import contains_name, fold


class UnresolvedCandidate(PersonCandidate):
    """A person candidate the user has to confirm.

    ``matches`` holds the ids of same-named contacts when the name was
    ambiguous; it is empty when no contact has that name.
    """

    matches: List[int] = Field(default_factory=list)


class ResolvedMention(BaseModel):
    candidate: PersonCandidate
    contact: Contact
    link: ContactLink
    created: bool


class ReconciliationResult(BaseModel):
    """Outcome of reconciling one message's person candidates."""

    message_id: int
    resolved: List[ResolvedMention] = Field(default_factory=list)
    unresolved: List[UnresolvedCandidate] = Field(default_factory=list)

    @property
    def links_created(self) -> int:
        return sum(1 for r in self.resolved if r.created)


class CandidateResolution(BaseModel):
    """Result of an explicit save-as-new or merge decision."""

    contact: Contact
    link: Optional[ContactLink] = None
    created: bool = False
    message_id: Optional[int] = None


# ---------------------------------------------------------------------------
# Linking
# ---------------------------------------------------------------------------

def link_mention(user_id: int, contact_id: int, message_id: int) -> Tuple[ContactLink, bool]:
    """Record that a contact was mentioned in a message (idempotent).

    Returns:
        Tuple of (link, created); created is False when the link already existed
    """
    return contacts_db.link_contact_message(user_id, contact_id, message_id)


def find_mentioning_message(
    user_id: int, conversation_id: int, name: str
) -> Optional[Message]:
    """Find the first message in a conversation whose text contains name.

    Matching is a case-insensitive substring test, in message order.
    """
    for message in conversations_db.get_messages(user_id, conversation_id):
        if contains_name(message.content, name):
            return message
    return None


# ---------------------------------------------------------------------------
# Automatic reconciliation
# ---------------------------------------------------------------------------

def reconcile_message(
    user_id: int,
    message_id: int,
    candidates: Union[ExtractionResult, List[PersonCandidate]],
) -> ReconciliationResult:
    """Attach a message's person candidates to existing contacts.

    Candidates are de-duplicated by case-folded name first. Assistant
    messages are never scanned: reconciling one returns an empty result.

    Args:
        user_id: Owner of the message and contacts
        message_id: The message the candidates were extracted from
        candidates: An ExtractionResult or a list of PersonCandidate

    Returns:
        ReconciliationResult with resolved links and unresolved candidates

    Raises:
        NotFoundError / AccessDeniedError: If the message isn't the user's
    """
    message = conversations_db.get_message(user_id, message_id)
    result = ReconciliationResult(message_id=message.id)
    if message.sender != Sender.USER:
        logger.debug(f"Skipping reconciliation of {message.sender.value} message {message_id}")
        return result

    people = candidates.people if isinstance(candidates, ExtractionResult) else candidates

    seen = set()
    for candidate in people:
        key = fold(candidate.name)
        if key in seen:
            continue
        seen.add(key)

        matches = contacts_db.find_contacts_by_exact_name(user_id, candidate.name)
        if len(matches) == 1:
            contact = matches[0]
            link, created = link_mention(user_id, contact.id, message.id)
            result.resolved.append(
                ResolvedMention(candidate=candidate, contact=contact, link=link, created=created)
            )
        else:
            result.unresolved.append(
                UnresolvedCandidate(
                    name=candidate.name,
                    context_info=candidate.context_info,
                    matches=[c.id for c in matches],
                )
            )

    logger.info(
        f"Reconciled message {message_id}: {len(result.resolved)} resolved "
        f"({result.links_created} new links), {len(result.unresolved)} unresolved"
    )
    return result


# ---------------------------------------------------------------------------
# Explicit user decisions
# ---------------------------------------------------------------------------

def _link_to_mention(
    user_id: int,
    contact: Contact,
    name: str,
    conversation_id: Optional[int],
    message_id: Optional[int],
) -> CandidateResolution:
    if message_id is None and conversation_id is not None:
        mentioning = find_mentioning_message(user_id, conversation_id, name)
        message_id = mentioning.id if mentioning else None

    if message_id is None:
        logger.info(f"No message mentions '{name}'; contact {contact.id} left unlinked")
        return CandidateResolution(contact=contact)

    link, created = link_mention(user_id, contact.id, message_id)
    return CandidateResolution(contact=contact, link=link, created=created, message_id=message_id)


def _check_mention_target(
    user_id: int, conversation_id: Optional[int], message_id: Optional[int]
) -> None:
    if conversation_id is not None:
        conversations_db.get_conversation(user_id, conversation_id)
    if message_id is None:
        return
    message = conversations_db.get_message(user_id, message_id)
    if conversation_id is not None and message.conversation_id != conversation_id:
        raise ValidationError(
            "message_id", f"message {message_id} is not in conversation {conversation_id}"
        )


def save_candidate_as_new(
    user_id: int,
    candidate: PersonCandidate,
    conversation_id: Optional[int] = None,
    message_id: Optional[int] = None,
) -> CandidateResolution:
    """Create a contact from a candidate and link it to its mention.

    The candidate's context becomes the contact's notes. The link goes to
    ``message_id`` when given, otherwise to the first message of the
    conversation whose text contains the name. When neither finds a
    message, the contact is still created, without a link.

    Raises:
        ValidationError: If the name is empty or the message is outside the conversation
        NotFoundError / AccessDeniedError: For a foreign conversation or message
    """
    _check_mention_target(user_id, conversation_id, message_id)
    contact = contacts_db.create_contact(user_id, candidate.name, candidate.context_info)
    return _link_to_mention(user_id, contact, candidate.name, conversation_id, message_id)


def merge_candidate(
    user_id: int,
    contact_id: int,
    candidate: PersonCandidate,
    conversation_id: Optional[int] = None,
    message_id: Optional[int] = None,
) -> CandidateResolution:
    """Attach a candidate's mention to a contact the user picked.

    The contact itself is left unchanged. The message is chosen the same
    way as in save_candidate_as_new.
    """
    contact = contacts_db.get_contact(user_id, contact_id)
    _check_mention_target(user_id, conversation_id, message_id)
    return _link_to_mention(user_id, contact, candidate.name, conversation_id, message_id)
