from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from voicechat.session import ConversationSessionManager
from voicechat.session.errors import ValidationError
from voicechat.session.models import MessageRecord, SessionRecord

from .dependencies import get_session_manager
from .schemas import (
    CancelResponse,
    ChatStateResponse,
    DeleteResponse,
    PendingInputRequest,
    SendMessageRequest,
    SessionDetail,
    SessionListResponse,
    SessionMessage,
    SessionSummary,
    TemperatureUpdateRequest,
)

router = APIRouter(prefix="/api", tags=["chat"])


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    manager: ConversationSessionManager = Depends(get_session_manager),
) -> SessionListResponse:
    active_id = manager.active_session_id
    return SessionListResponse(
        active_session_id=active_id,
        sessions=[_to_summary(record, active_id) for record in manager.repository.sessions],
    )


@router.post("/sessions", status_code=status.HTTP_201_CREATED, response_model=SessionDetail)
async def new_chat(
    manager: ConversationSessionManager = Depends(get_session_manager),
) -> SessionDetail:
    session_id = manager.new_chat()
    return _to_detail(_require_session(manager, session_id), manager.active_session_id)


@router.get("/sessions/{session_id}", response_model=SessionDetail)
async def get_session(
    session_id: str,
    manager: ConversationSessionManager = Depends(get_session_manager),
) -> SessionDetail:
    return _to_detail(_require_session(manager, session_id), manager.active_session_id)


@router.post("/sessions/{session_id}/activate", response_model=SessionDetail)
async def switch_session(
    session_id: str,
    manager: ConversationSessionManager = Depends(get_session_manager),
) -> SessionDetail:
    if manager.switch_session(session_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return _to_detail(_require_session(manager, session_id), manager.active_session_id)


@router.delete("/sessions/{session_id}", response_model=DeleteResponse)
async def delete_session(
    session_id: str,
    manager: ConversationSessionManager = Depends(get_session_manager),
) -> DeleteResponse:
    if not manager.delete_session(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return DeleteResponse(success=True)


@router.get("/chat/state", response_model=ChatStateResponse)
async def chat_state(
    manager: ConversationSessionManager = Depends(get_session_manager),
) -> ChatStateResponse:
    return _to_state(manager)


@router.post("/chat", status_code=status.HTTP_202_ACCEPTED, response_model=ChatStateResponse)
async def send_message(
    payload: SendMessageRequest,
    wait: bool = Query(default=False, description="Block until the reply has been filed."),
    manager: ConversationSessionManager = Depends(get_session_manager),
) -> ChatStateResponse:
    try:
        context = manager.send_message(payload.text)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if context is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A request is already in progress")
    if wait:
        await manager.wait_until_idle()
    return _to_state(manager)


@router.post("/chat/cancel", response_model=CancelResponse)
async def cancel_request(
    manager: ConversationSessionManager = Depends(get_session_manager),
) -> CancelResponse:
    return CancelResponse(cancelled=manager.cancel())


@router.put("/chat/input", response_model=ChatStateResponse)
async def update_pending_input(
    payload: PendingInputRequest,
    manager: ConversationSessionManager = Depends(get_session_manager),
) -> ChatStateResponse:
    if manager.listening:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Speech capture is active")
    manager.pending_input = payload.text
    return _to_state(manager)


@router.put("/chat/settings", response_model=ChatStateResponse)
async def update_settings(
    payload: TemperatureUpdateRequest,
    manager: ConversationSessionManager = Depends(get_session_manager),
) -> ChatStateResponse:
    manager.set_temperature(payload.temperature)
    return _to_state(manager)


def _require_session(manager: ConversationSessionManager, session_id: str) -> SessionRecord:
    session = manager.repository.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


def _to_message(record: MessageRecord) -> SessionMessage:
    return SessionMessage(text=record.text, sender=record.sender)


def _to_summary(record: SessionRecord, active_id: str | None) -> SessionSummary:
    return SessionSummary(
        id=record.id,
        title=record.title,
        active=record.id == active_id,
        message_count=len(record.messages),
    )


def _to_detail(record: SessionRecord, active_id: str | None) -> SessionDetail:
    return SessionDetail(
        **_to_summary(record, active_id).model_dump(),
        messages=[_to_message(message) for message in record.messages],
    )


def _to_state(manager: ConversationSessionManager) -> ChatStateResponse:
    active = manager.repository.active
    return ChatStateResponse(
        active_session_id=manager.active_session_id,
        state=manager.state,
        last_state=manager.controller.last_state,
        temperature=manager.temperature,
        listening=manager.listening,
        pending_input=manager.pending_input,
        messages=[_to_message(message) for message in active.messages] if active else [],
    )
