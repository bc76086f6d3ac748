"""Message-send workflow.

Orchestrates one user message from text to stored records:

    idle -> sendPending -> success | failure

1. Create the conversation if none is bound yet (default title).
2. Store the user message.
3. Ask the assistant for a reply and store it.
4. Run entity extraction on the *user* message and reconcile the people
   it finds against the contact store.

The assistant and extractor are injectable so tests and alternative
backends can replace the OpenAI ones. A failing or slow assistant leaves
the stored user message in place and ends in ``failure``; a failing or
slow extractor simply yields no candidates.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional, Sequence

from revoc import contact_resolver, conversations_db
from revoc.assistant import OpenAIAssistant
from revoc.config import config
from revoc.entity_extractor import Extractor, extract_candidates
from revoc.models import Conversation, Sender
from revoc.session.models import SendResult, SendState
from revoc.utils.exceptions import InvalidTransitionError, ValidationError
from revoc.utils.logger import logger

# (user_text, prior_messages) -> reply text. May raise.
Assistant = Callable[[str, Sequence[Dict[str, str]]], Awaitable[str]]


class MessageSendWorkflow:
    """Sends messages into one conversation on behalf of one user.

    The workflow binds to a conversation on the first send (creating it
    when ``conversation_id`` was not given) and reuses it afterwards.
    Only one send may be in flight at a time.

    Usage:
        workflow = MessageSendWorkflow(user_id=1)
        result = await workflow.send("Had lunch with Maria from Acme")
        result.unresolved  # [UnresolvedCandidate(name='Maria', ...)]
    """

    def __init__(
        self,
        user_id: int,
        conversation_id: Optional[int] = None,
        assistant: Optional[Assistant] = None,
        extractor: Optional[Extractor] = None,
        assistant_timeout: Optional[float] = None,
        extraction_timeout: Optional[float] = None,
    ):
        self.user_id = user_id
        self.conversation_id = conversation_id
        self.assistant = assistant or OpenAIAssistant()
        self.extractor = extractor
        self.assistant_timeout = (
            assistant_timeout if assistant_timeout is not None else config.assistant_timeout
        )
        self.extraction_timeout = extraction_timeout
        self._state = SendState.IDLE

    @property
    def state(self) -> SendState:
        return self._state

    async def _ensure_conversation(self) -> Conversation:
        if self.conversation_id is None:
            conversation = await asyncio.to_thread(conversations_db.create_conversation, self.user_id)
            self.conversation_id = conversation.id
            return conversation
        return await asyncio.to_thread(
            conversations_db.get_conversation, self.user_id, self.conversation_id
        )

    async def _ask_assistant(self, text: str, prior: Sequence[Dict[str, str]]) -> str:
        return await asyncio.wait_for(self.assistant(text, prior), timeout=self.assistant_timeout)

    async def send(self, text: str) -> SendResult:
        """Send one user message and collect everything it produced.

        Raises:
            ValidationError: If text is blank (nothing is stored)
            InvalidTransitionError: If another send is still pending
            NotFoundError / AccessDeniedError: If the bound conversation isn't the user's
        """
        if self._state == SendState.SEND_PENDING:
            raise InvalidTransitionError("message send", self._state.value, "send")
        if not text or not text.strip():
            raise ValidationError("content", "must not be empty")

        self._state = SendState.SEND_PENDING
        try:
            conversation = await self._ensure_conversation()
            prior = await asyncio.to_thread(
                conversations_db.get_history, self.user_id, conversation.id
            )
            user_message = await asyncio.to_thread(
                conversations_db.add_message, self.user_id, conversation.id, Sender.USER.value, text
            )
        except BaseException:
            self._state = SendState.FAILURE
            raise

        assistant_message = None
        assistant_error = None
        try:
            try:
                reply = await self._ask_assistant(text, prior)
                assistant_message = await asyncio.to_thread(
                    conversations_db.add_message,
                    self.user_id, conversation.id, Sender.ASSISTANT.value, reply,
                )
            except asyncio.TimeoutError:
                assistant_error = f"Assistant timed out after {self.assistant_timeout}s"
                logger.warning(f"{assistant_error} (conversation {conversation.id})")
            except Exception as e:
                assistant_error = str(e) or e.__class__.__name__
                logger.error(f"Assistant failed for conversation {conversation.id}: {assistant_error}")

            # Only the user's own words are scanned for contacts
            extraction = await extract_candidates(
                text, extractor=self.extractor, timeout=self.extraction_timeout
            )
            reconciliation = await asyncio.to_thread(
                contact_resolver.reconcile_message, self.user_id, user_message.id, extraction
            )
        except BaseException:
            # The user message stays stored; the send itself is over
            self._state = SendState.FAILURE
            raise

        self._state = SendState.FAILURE if assistant_error else SendState.SUCCESS
        return SendResult(
            conversation=conversation,
            user_message=user_message,
            assistant_message=assistant_message,
            assistant_error=assistant_error,
            resolved=reconciliation.resolved,
            unresolved=reconciliation.unresolved,
            events=extraction.events,
            tasks=extraction.tasks,
        )

    def reset(self) -> None:
        """Return to idle after a finished send."""
        if self._state == SendState.SEND_PENDING:
            raise InvalidTransitionError("message send", self._state.value, "reset")
        self._state = SendState.IDLE
