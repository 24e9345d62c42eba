import asyncio
from typing import Optional

import pytest

from voicechat.session.errors import ProtocolError, SpeechInputError, TransportError, ValidationError
from voicechat.session.lifecycle import RequestState
from voicechat.session.manager import (
    CANCEL_NOTICE,
    LISTENING_PLACEHOLDER,
    ConversationSessionManager,
    build_history,
)
from voicechat.session.models import HistoryEntry, MessageRecord, Sender
from voicechat.session.repository import SessionRepository
from voicechat.session.store import SQLiteSessionStore
from voicechat.session.title import DEFAULT_TITLE


class FakeGenerationClient:
    """Replies with ``reply`` (or raises ``error``), optionally held until released."""

    def __init__(
        self,
        reply: str = "Hi there",
        *,
        error: Optional[Exception] = None,
        hold: bool = False,
        configured: bool = True,
    ) -> None:
        self.reply = reply
        self.error = error
        self.configured = configured
        self.gate = asyncio.Event()
        if not hold:
            self.gate.set()
        self.calls: list[tuple[list[HistoryEntry], float]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def generate(self, history, temperature):
        self.calls.append((list(history), temperature))
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.reply


class FakeSpeechOutput:
    def __init__(self) -> None:
        self.spoken: list[str] = []
        self.cancels = 0

    def speak(self, text: str) -> None:
        self.spoken.append(text)

    def cancel(self) -> None:
        self.cancels += 1


class FakeSpeechInput:
    def __init__(self, utterance: Optional[str] = None, *, error: Optional[str] = None) -> None:
        self.utterance = utterance
        self.error = error
        self.stopped = False

    async def listen(self) -> Optional[str]:
        await asyncio.sleep(0)
        if self.error is not None:
            raise SpeechInputError(self.error)
        return self.utterance

    def stop(self) -> None:
        self.stopped = True


@pytest.fixture
def store(tmp_path):
    store = SQLiteSessionStore(str(tmp_path / "manager.db"))
    store.init()
    return store


def _make_manager(store, client, **kwargs) -> ConversationSessionManager:
    repository = SessionRepository(store)
    repository.load()
    return ConversationSessionManager(repository, client, **kwargs)


def _log(manager, session_id=None):
    session_id = session_id or manager.active_session_id
    return [(m.text, m.sender) for m in manager.repository.messages(session_id)]


def test_build_history_filters_empty_and_maps_roles():
    messages = [
        MessageRecord(text="Hello", sender=Sender.USER),
        MessageRecord(text="   ", sender=Sender.ASSISTANT),
        MessageRecord(text="Hi there", sender=Sender.ASSISTANT),
    ]

    history = build_history(messages, "How are you?")

    assert history == [
        HistoryEntry(role="user", text="Hello"),
        HistoryEntry(role="model", text="Hi there"),
        HistoryEntry(role="user", text="How are you?"),
    ]


@pytest.mark.asyncio
async def test_send_message_delivers_reply(store):
    client = FakeGenerationClient("Hi there")
    speech = FakeSpeechOutput()
    manager = _make_manager(store, client, speech_output=speech)
    session_id = manager.active_session_id
    assert manager.repository.get(session_id).title == DEFAULT_TITLE

    context = manager.send_message("Hello")
    assert context is not None
    assert manager.state is RequestState.SENDING
    assert _log(manager) == [("Hello", Sender.USER)]

    await manager.wait_until_idle()

    assert _log(manager) == [("Hello", Sender.USER), ("Hi there", Sender.ASSISTANT)]
    assert manager.repository.get(session_id).title == "Hello..."
    assert manager.state is RequestState.IDLE
    assert manager.controller.last_state is RequestState.DELIVERED
    assert speech.spoken == ["Hi there"]


@pytest.mark.asyncio
async def test_history_snapshot_excludes_the_optimistic_append(store):
    client = FakeGenerationClient("second reply")
    manager = _make_manager(store, client, temperature=0.3)
    session_id = manager.active_session_id
    manager.repository.append(session_id, MessageRecord(text="First", sender=Sender.USER))
    manager.repository.append(session_id, MessageRecord(text="First reply", sender=Sender.ASSISTANT))

    manager.send_message("Second")
    await manager.wait_until_idle()

    (history, temperature), = client.calls
    assert [(entry.role, entry.text) for entry in history] == [
        ("user", "First"),
        ("model", "First reply"),
        ("user", "Second"),
    ]
    assert temperature == 0.3


@pytest.mark.asyncio
async def test_cancel_appends_notice_and_no_reply(store):
    client = FakeGenerationClient("Hi there", hold=True)
    manager = _make_manager(store, client)

    manager.send_message("Hello")
    assert manager.cancel() is True
    client.gate.set()
    await manager.wait_until_idle()

    assert _log(manager) == [("Hello", Sender.USER), (CANCEL_NOTICE, Sender.ASSISTANT)]
    assert manager.state is RequestState.IDLE
    assert manager.controller.last_state is RequestState.CANCELLED


@pytest.mark.asyncio
async def test_cancel_is_idempotent(store):
    manager = _make_manager(store, FakeGenerationClient(hold=True))

    assert manager.cancel() is False
    manager.send_message("Hello")
    assert manager.cancel() is True
    assert manager.cancel() is False
    await manager.wait_until_idle()

    assert _log(manager).count((CANCEL_NOTICE, Sender.ASSISTANT)) == 1


@pytest.mark.asyncio
async def test_switch_session_cancels_silently(store):
    client = FakeGenerationClient("late reply", hold=True)
    manager = _make_manager(store, client)
    session_one = manager.active_session_id
    session_two = manager.repository.create()
    manager.switch_session(session_one)

    manager.send_message("A")
    manager.switch_session(session_two)
    client.gate.set()
    await manager.wait_until_idle()

    assert _log(manager, session_one) == [("A", Sender.USER)]
    assert _log(manager, session_two) == []
    assert manager.active_session_id == session_two
    assert manager.state is RequestState.IDLE


@pytest.mark.asyncio
async def test_switch_to_active_or_unknown_session_keeps_request(store):
    client = FakeGenerationClient("Hi there", hold=True)
    manager = _make_manager(store, client)
    active = manager.active_session_id

    manager.send_message("Hello")
    assert manager.switch_session(active) == [MessageRecord(text="Hello", sender=Sender.USER)]
    assert manager.switch_session("missing") is None
    assert manager.state is RequestState.SENDING

    client.gate.set()
    await manager.wait_until_idle()
    assert _log(manager)[-1] == ("Hi there", Sender.ASSISTANT)


@pytest.mark.asyncio
async def test_new_chat_cancels_silently_and_clears_input(store):
    client = FakeGenerationClient(hold=True)
    speech = FakeSpeechOutput()
    manager = _make_manager(store, client, speech_output=speech)
    first = manager.active_session_id

    manager.send_message("Hello")
    manager.pending_input = "draft"
    second = manager.new_chat()
    client.gate.set()
    await manager.wait_until_idle()

    assert second != first
    assert manager.active_session_id == second
    assert manager.pending_input == ""
    assert _log(manager, first) == [("Hello", Sender.USER)]
    assert _log(manager, second) == []
    assert speech.cancels >= 1
    assert speech.spoken == []


@pytest.mark.asyncio
async def test_deleting_target_session_drops_response(store):
    client = FakeGenerationClient(hold=True)
    manager = _make_manager(store, client)
    target = manager.active_session_id

    manager.send_message("Hello")
    assert manager.delete_session(target) is True
    client.gate.set()
    await manager.wait_until_idle()

    assert manager.repository.get(target) is None
    assert len(manager.repository.sessions) == 1
    assert _log(manager) == []


@pytest.mark.asyncio
async def test_send_while_sending_is_rejected(store):
    client = FakeGenerationClient(hold=True)
    manager = _make_manager(store, client)

    first = manager.send_message("Hello")
    second = manager.send_message("Hello again")

    assert second is None
    assert manager.controller.current is first
    assert _log(manager) == [("Hello", Sender.USER)]

    client.gate.set()
    await manager.wait_until_idle()
    assert len(client.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
async def test_blank_input_is_rejected(store, text):
    manager = _make_manager(store, FakeGenerationClient())

    with pytest.raises(ValidationError):
        manager.send_message(text)

    assert _log(manager) == []
    assert manager.state is RequestState.IDLE


@pytest.mark.asyncio
async def test_missing_credentials_are_rejected(store):
    manager = _make_manager(store, FakeGenerationClient(configured=False))

    with pytest.raises(ValidationError):
        manager.send_message("Hello")

    assert _log(manager) == []


@pytest.mark.asyncio
async def test_pending_input_is_sent_and_cleared(store):
    client = FakeGenerationClient()
    manager = _make_manager(store, client)
    manager.pending_input = "Typed text"

    manager.send_message()
    assert manager.pending_input == ""
    await manager.wait_until_idle()

    assert _log(manager)[0] == ("Typed text", Sender.USER)


@pytest.mark.asyncio
async def test_protocol_error_appends_status_message(store):
    client = FakeGenerationClient(error=ProtocolError(503))
    speech = FakeSpeechOutput()
    manager = _make_manager(store, client, speech_output=speech)

    manager.send_message("Hello")
    await manager.wait_until_idle()

    assert _log(manager) == [("Hello", Sender.USER), ("Error: Code 503", Sender.ASSISTANT)]
    assert manager.state is RequestState.IDLE
    assert manager.controller.last_state is RequestState.FAILED
    assert speech.spoken == []


@pytest.mark.asyncio
async def test_transport_error_appends_network_message(store):
    manager = _make_manager(store, FakeGenerationClient(error=TransportError("offline")))

    manager.send_message("Hello")
    await manager.wait_until_idle()

    assert _log(manager)[-1] == ("Error: network problem.", Sender.ASSISTANT)


@pytest.mark.asyncio
async def test_set_temperature_validates_range(store):
    manager = _make_manager(store, FakeGenerationClient())

    manager.set_temperature(0.0)
    manager.set_temperature(1.0)
    assert manager.temperature == 1.0

    with pytest.raises(ValidationError):
        manager.set_temperature(1.5)
    assert manager.temperature == 1.0


@pytest.mark.asyncio
async def test_capture_speech_sends_utterance(store):
    client = FakeGenerationClient("Bonjour")
    speech_out = FakeSpeechOutput()
    manager = _make_manager(
        store,
        client,
        speech_output=speech_out,
        speech_input=FakeSpeechInput("Salut"),
    )

    context = await manager.capture_speech()
    assert context is not None
    assert manager.listening is False
    await manager.wait_until_idle()

    assert _log(manager) == [("Salut", Sender.USER), ("Bonjour", Sender.ASSISTANT)]
    assert speech_out.spoken == ["Bonjour"]


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["no-speech", "aborted", "network"])
async def test_capture_speech_errors_send_nothing(store, code):
    manager = _make_manager(store, FakeGenerationClient(), speech_input=FakeSpeechInput(error=code))

    assert await manager.capture_speech() is None

    assert manager.listening is False
    assert manager.pending_input == ""
    assert _log(manager) == []


@pytest.mark.asyncio
async def test_capture_speech_toggle_stops_listening(store):
    speech_in = FakeSpeechInput("never sent")
    manager = _make_manager(store, FakeGenerationClient(), speech_input=speech_in)
    manager.listening = True

    assert await manager.capture_speech() is None
    assert speech_in.stopped is True


@pytest.mark.asyncio
async def test_capture_speech_shows_placeholder_while_listening(store):
    manager = _make_manager(store, FakeGenerationClient(), speech_input=FakeSpeechInput(None))

    capture = asyncio.create_task(manager.capture_speech())
    await asyncio.sleep(0)
    assert manager.listening is True
    assert manager.pending_input == LISTENING_PLACEHOLDER

    assert await capture is None
    assert manager.pending_input == ""


@pytest.mark.asyncio
async def test_reply_is_not_spoken_while_listening(store):
    client = FakeGenerationClient("Hi there", hold=True)
    speech = FakeSpeechOutput()
    manager = _make_manager(store, client, speech_output=speech)

    manager.send_message("Hello")
    manager.listening = True
    client.gate.set()
    await manager.wait_until_idle()

    assert _log(manager)[-1] == ("Hi there", Sender.ASSISTANT)
    assert speech.spoken == []


class HeldSpeechInput:
    """Keeps capture open until ``release`` is called with the recognized text."""

    def __init__(self) -> None:
        self._utterance: Optional[str] = None
        self._done = asyncio.Event()

    def release(self, utterance: Optional[str]) -> None:
        self._utterance = utterance
        self._done.set()

    async def listen(self) -> Optional[str]:
        await self._done.wait()
        return self._utterance

    def stop(self) -> None:
        self.release(None)


@pytest.mark.asyncio
async def test_send_during_speech_capture_is_rejected(store):
    client = FakeGenerationClient("reply")
    speech_in = HeldSpeechInput()
    manager = _make_manager(store, client, speech_input=speech_in)

    capture = asyncio.create_task(manager.capture_speech())
    await asyncio.sleep(0)
    assert manager.listening is True

    with pytest.raises(ValidationError):
        manager.send_message()
    with pytest.raises(ValidationError):
        manager.send_message("typed while listening")

    assert _log(manager) == []
    assert client.calls == []

    speech_in.release("spoken text")
    assert await capture is not None
    await manager.wait_until_idle()

    assert _log(manager) == [("spoken text", Sender.USER), ("reply", Sender.ASSISTANT)]
    assert (LISTENING_PLACEHOLDER, Sender.USER) not in _log(manager)
