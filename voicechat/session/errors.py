from __future__ import annotations

from typing import Optional


class ChatError(Exception):
    """Base class for chat client errors."""


class ValidationError(ChatError):
    """Input rejected before any state was touched (empty text, missing credentials)."""


class PersistenceError(ChatError):
    """Stored session data could not be decoded."""


class GenerationError(ChatError):
    """The remote generation call did not produce an answer."""

    def user_message(self) -> str:
        return "Error: the request failed."


class TransportError(GenerationError):
    """No response reached the generation service."""

    def user_message(self) -> str:
        return "Error: network problem."


class ProtocolError(GenerationError):
    """The generation service answered with a non-success status."""

    def __init__(self, status_code: int, detail: Optional[str] = None) -> None:
        super().__init__(f"Generation service returned HTTP {status_code}")
        self.status_code = status_code
        self.detail = detail

    def user_message(self) -> str:
        return f"Error: Code {self.status_code}"


class SpeechInputError(ChatError):
    """Speech capture ended without an utterance."""

    def __init__(self, code: str) -> None:
        super().__init__(f"Speech recognition error: {code}")
        self.code = code
