"""
Collaborators the session manager drives but does not implement.

- GenerationClient.generate(history, temperature) -> reply text, raising
  TransportError / ProtocolError; must abort when its task is cancelled.
- SpeechOutput.speak(text) / cancel(): read replies aloud.
- SpeechInput.listen() -> one utterance (or None), raising SpeechInputError;
  stop() ends an ongoing capture.

Tests use small fakes of these instead of network or audio devices.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .models import HistoryEntry


class GenerationClient(Protocol):
    @property
    def is_configured(self) -> bool: ...

    async def generate(self, history: Sequence[HistoryEntry], temperature: float) -> str: ...


class SpeechOutput(Protocol):
    def speak(self, text: str) -> None: ...

    def cancel(self) -> None: ...


class SpeechInput(Protocol):
    async def listen(self) -> Optional[str]: ...

    def stop(self) -> None: ...
