"""Voice capture, transcription and confirmation workflow.

    idle -> recording -> transcribing -> confirmReview -> sendPending -> idle
                  \\            \\               \\
                   +------------+---------------+--> idle (cancel)

Stopping a recording always starts transcription. A failed or empty
transcription discards the audio and returns to idle. While in
confirmReview the transcript can be edited freely; nothing is stored
until the user confirms, at which point the text goes through the
regular message-send workflow.

Cancelling releases the audio recorder immediately, whatever the state.
"""

from typing import Awaitable, Callable, Optional, Protocol

from revoc.assistant import transcribe_audio
from revoc.session.models import CaptureState, SendResult
from revoc.session.workflow import MessageSendWorkflow
from revoc.utils.exceptions import InvalidTransitionError
from revoc.utils.logger import logger

Transcriber = Callable[[bytes], Awaitable[str]]


class Recorder(Protocol):
    """Audio capture device."""

    def start(self) -> None: ...

    def stop(self) -> bytes: ...

    def release(self) -> None: ...


class CaptureWorkflow:
    """Record, transcribe, review and send a voice message."""

    name = "voice capture"

    def __init__(
        self,
        recorder: Recorder,
        send_workflow: MessageSendWorkflow,
        transcriber: Optional[Transcriber] = None,
    ):
        self.recorder = recorder
        self.send_workflow = send_workflow
        self.transcriber = transcriber or transcribe_audio
        self._state = CaptureState.IDLE
        self._transcript: Optional[str] = None
        self._audio: Optional[bytes] = None
        # Bumped on cancel so a late transcription result is ignored
        self._generation = 0

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def transcript(self) -> Optional[str]:
        return self._transcript

    def _require(self, state: CaptureState, action: str) -> None:
        if self._state != state:
            raise InvalidTransitionError(self.name, self._state.value, action)

    def _reset(self) -> None:
        self._state = CaptureState.IDLE
        self._transcript = None
        self._audio = None

    def start(self) -> None:
        self._require(CaptureState.IDLE, "start recording")
        self.recorder.start()
        self._state = CaptureState.RECORDING
        logger.debug("Recording started")

    async def stop(self) -> Optional[str]:
        """Stop recording and transcribe.

        Returns:
            The transcript (now in confirmReview), or None if nothing was
            captured, transcription failed or the capture was cancelled
        """
        self._require(CaptureState.RECORDING, "stop recording")
        audio = self.recorder.stop()
        self.recorder.release()

        if not audio:
            logger.info("Recording stopped without audio")
            self._reset()
            return None

        self._audio = audio
        self._state = CaptureState.TRANSCRIBING
        generation = self._generation

        try:
            text = await self.transcriber(audio)
        except Exception as e:
            logger.warning(f"Transcription failed, discarding audio: {e}")
            if generation == self._generation:
                self._reset()
            return None

        if generation != self._generation:
            logger.debug("Transcription finished after cancel; result dropped")
            return None

        self._audio = None
        if not text or not text.strip():
            logger.info("Transcription was empty, discarding audio")
            self._reset()
            return None

        self._transcript = text.strip()
        self._state = CaptureState.CONFIRM_REVIEW
        return self._transcript

    def edit(self, text: str) -> None:
        """Replace the staged transcript."""
        self._require(CaptureState.CONFIRM_REVIEW, "edit transcript")
        self._transcript = text

    async def confirm(self) -> SendResult:
        """Send the reviewed transcript as a user message.

        The workflow returns to idle whether or not the send succeeds,
        unless it was cancelled meanwhile and a new capture has begun.
        """
        self._require(CaptureState.CONFIRM_REVIEW, "confirm transcript")
        text = self._transcript or ""
        self._state = CaptureState.SEND_PENDING
        generation = self._generation
        try:
            return await self.send_workflow.send(text)
        finally:
            if generation == self._generation:
                self._reset()

    def cancel(self) -> None:
        """Abandon the capture and release the recorder.

        Allowed from any state. Cancelling while a confirmed send is
        pending does not stop that send.
        """
        self.recorder.release()
        self._generation += 1
        previous = self._state
        self._reset()
        logger.debug(f"Capture cancelled from {previous.value}")
