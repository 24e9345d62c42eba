from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from voicechat.session.lifecycle import RequestState
from voicechat.session.models import Sender


class SessionMessage(BaseModel):
    text: str
    sender: Sender


class SessionSummary(BaseModel):
    id: str
    title: str
    active: bool = False
    message_count: int = 0


class SessionDetail(SessionSummary):
    messages: list[SessionMessage] = Field(default_factory=list)


class SessionListResponse(BaseModel):
    active_session_id: Optional[str] = None
    sessions: list[SessionSummary]


class ChatStateResponse(BaseModel):
    active_session_id: Optional[str] = None
    state: RequestState
    last_state: RequestState
    temperature: float
    listening: bool = False
    pending_input: str = ""
    messages: list[SessionMessage] = Field(default_factory=list)


class SendMessageRequest(BaseModel):
    text: Optional[str] = Field(
        default=None,
        description="Message text; the pending input is sent when omitted.",
    )


class PendingInputRequest(BaseModel):
    text: str = Field(description="Draft input shown in the composer.")


class TemperatureUpdateRequest(BaseModel):
    temperature: float = Field(ge=0.0, le=1.0, description="Sampling temperature.")


class CancelResponse(BaseModel):
    cancelled: bool


class DeleteResponse(BaseModel):
    success: bool
