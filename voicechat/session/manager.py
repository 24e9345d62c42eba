"""Conversation orchestration: sessions, the single in-flight request, and speech."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .errors import SpeechInputError, ValidationError
from .interfaces import GenerationClient, SpeechInput, SpeechOutput
from .lifecycle import (
    Cancelled,
    Delivered,
    Failed,
    RequestContext,
    RequestLifecycleController,
    RequestOutcome,
    RequestState,
)
from .models import HistoryEntry, MessageRecord, Sender
from .repository import SessionRepository

logger = logging.getLogger(__name__)

CANCEL_NOTICE = "Request interrupted by user."
LISTENING_PLACEHOLDER = "Listening..."
DEFAULT_TEMPERATURE = 0.7

_SILENT_SPEECH_ERRORS = frozenset({"no-speech", "aborted"})
_ROLE_BY_SENDER = {Sender.USER: "user", Sender.ASSISTANT: "model"}


def build_history(messages: Iterable[MessageRecord], text: str) -> list[HistoryEntry]:
    """Prompt for a new user message: prior non-empty turns, then the message itself."""
    history = [
        HistoryEntry(role=_ROLE_BY_SENDER[message.sender], text=message.text)
        for message in messages
        if message.text.strip()
    ]
    history.append(HistoryEntry(role="user", text=text))
    return history


def _validate_temperature(value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValidationError(f"Temperature must be between 0.0 and 1.0, got {value}")
    return float(value)


class ConversationSessionManager:
    """Single source of truth for the chat UI.

    Session changes that race with an outstanding request cancel it
    silently; replies are only filed into the session they were issued for,
    and only while that session is still the active one.
    """

    def __init__(
        self,
        repository: SessionRepository,
        client: GenerationClient,
        *,
        speech_output: Optional[SpeechOutput] = None,
        speech_input: Optional[SpeechInput] = None,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        self.repository = repository
        self._client = client
        self._speech_output = speech_output
        self._speech_input = speech_input
        self._temperature = _validate_temperature(temperature)
        self.controller = RequestLifecycleController(self._on_request_complete)
        self.pending_input = ""
        self.listening = False

    @property
    def state(self) -> RequestState:
        return self.controller.state

    @property
    def active_session_id(self) -> Optional[str]:
        return self.repository.active_id

    @property
    def temperature(self) -> float:
        return self._temperature

    def set_temperature(self, value: float) -> None:
        self._temperature = _validate_temperature(value)

    def new_chat(self) -> str:
        self.controller.cancel(user_initiated=False)
        self._stop_speaking()
        session_id = self.repository.create()
        self.pending_input = ""
        return session_id

    def switch_session(self, session_id: str) -> Optional[list[MessageRecord]]:
        """Activate ``session_id`` and return its log, or ``None`` if it does not exist."""
        if session_id == self.repository.active_id:
            return self.repository.messages(session_id)
        if self.repository.get(session_id) is None:
            return None

        self.controller.cancel(user_initiated=False)
        self._stop_speaking()
        self.pending_input = ""
        return self.repository.switch_to(session_id)

    def delete_session(self, session_id: str) -> bool:
        current = self.controller.current
        if current is not None and current.target_session_id == session_id:
            self.controller.cancel(user_initiated=False)

        was_active = session_id == self.repository.active_id
        deleted = self.repository.delete(session_id)
        if deleted and was_active:
            self._stop_speaking()
            self.pending_input = ""
        return deleted

    def send_message(self, text: Optional[str] = None) -> Optional[RequestContext]:
        """Send ``text`` (or the pending input) from the active session.

        Raises ``ValidationError`` for blank input, missing credentials, or
        while speech capture is in progress.
        Returns ``None`` when a request is already in flight.
        """
        content = self.pending_input if text is None else text
        if not self._client.is_configured:
            raise ValidationError("The generation service API key is not configured")
        if not content or not content.strip():
            raise ValidationError("Message text is empty")
        if self.listening:
            raise ValidationError("Cannot send while speech capture is active")
        if self.controller.is_sending:
            logger.info("Ignoring send while a request is in flight")
            return None

        session = self.repository.active
        if session is None:
            raise ValidationError("No active session")

        # history must be read before the user message lands in the log
        history = build_history(session.messages, content)
        temperature = self._temperature
        context = self.controller.begin(
            session.id,
            history,
            lambda entries: self._client.generate(entries, temperature),
        )
        self.repository.append(session.id, MessageRecord(text=content, sender=Sender.USER))
        self.pending_input = ""
        return context

    def cancel(self) -> bool:
        return self.controller.cancel(user_initiated=True)

    async def capture_speech(self) -> Optional[RequestContext]:
        """Listen for one utterance and send it; a second call while listening stops capture."""
        if self._speech_input is None:
            raise ValidationError("Speech input is not available")
        if self.listening:
            self._speech_input.stop()
            return None
        if self.controller.is_sending:
            logger.info("Ignoring speech capture while a request is in flight")
            return None

        self._stop_speaking()
        self.listening = True
        self.pending_input = LISTENING_PLACEHOLDER
        try:
            utterance = await self._speech_input.listen()
        except SpeechInputError as exc:
            if exc.code not in _SILENT_SPEECH_ERRORS:
                logger.error("Speech recognition failed: %s", exc.code)
            utterance = None
        finally:
            self.listening = False
            if self.pending_input == LISTENING_PLACEHOLDER:
                self.pending_input = ""

        if not utterance or not utterance.strip():
            return None
        return self.send_message(utterance)

    async def wait_until_idle(self) -> None:
        await self.controller.wait()

    def _on_request_complete(self, context: RequestContext, outcome: RequestOutcome) -> None:
        if isinstance(outcome, Delivered):
            text = outcome.text
        elif isinstance(outcome, Failed):
            logger.warning("Generation for session %s failed: %s", context.target_session_id, outcome.error)
            text = outcome.error.user_message()
        elif isinstance(outcome, Cancelled) and outcome.user_initiated:
            text = CANCEL_NOTICE
        else:
            logger.debug("Request for session %s cancelled silently", context.target_session_id)
            return

        appended = self.repository.append(
            context.target_session_id,
            MessageRecord(text=text, sender=Sender.ASSISTANT),
            require_active=True,
        )
        if appended and isinstance(outcome, Delivered):
            self._speak(text)

    def _speak(self, text: str) -> None:
        if self._speech_output is None:
            return
        self._speech_output.cancel()
        if not self.listening:
            self._speech_output.speak(text)

    def _stop_speaking(self) -> None:
        if self._speech_output is not None:
            self._speech_output.cancel()
