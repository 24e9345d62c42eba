from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence, Union

from .errors import GenerationError
from .models import HistoryEntry

logger = logging.getLogger(__name__)


class RequestState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class Delivered:
    text: str
    state = RequestState.DELIVERED


@dataclass(frozen=True, slots=True)
class Failed:
    error: GenerationError
    state = RequestState.FAILED


@dataclass(frozen=True, slots=True)
class Cancelled:
    user_initiated: bool
    state = RequestState.CANCELLED


RequestOutcome = Union[Delivered, Failed, Cancelled]
GenerationCall = Callable[[Sequence[HistoryEntry]], Awaitable[str]]
CompletionHandler = Callable[["RequestContext", RequestOutcome], None]


@dataclass(eq=False, slots=True)
class RequestContext:
    """The single in-flight generation request and what it was issued for."""

    target_session_id: str
    history: tuple[HistoryEntry, ...]
    task: Optional[asyncio.Task] = None
    outcome: Optional[RequestOutcome] = None

    @property
    def finished(self) -> bool:
        return self.outcome is not None


class RequestLifecycleController:
    """Single-flight owner of outbound generation requests.

    At most one ``RequestContext`` is alive. Every request reaches exactly one
    terminal outcome, which is handed to ``on_complete`` after the slot has
    been released; whichever of completion or cancellation happens first wins.
    """

    def __init__(self, on_complete: CompletionHandler) -> None:
        self._on_complete = on_complete
        self._context: Optional[RequestContext] = None
        self._last_state = RequestState.IDLE
        self._pending: set[asyncio.Task] = set()

    @property
    def state(self) -> RequestState:
        return RequestState.SENDING if self._context is not None else RequestState.IDLE

    @property
    def last_state(self) -> RequestState:
        return self._last_state

    @property
    def current(self) -> Optional[RequestContext]:
        return self._context

    @property
    def is_sending(self) -> bool:
        return self._context is not None

    def begin(
        self,
        target_session_id: str,
        history: Sequence[HistoryEntry],
        call: GenerationCall,
    ) -> Optional[RequestContext]:
        """Claim the slot and start ``call``; ``None`` if a request is already in flight."""
        if self._context is not None:
            logger.info("Rejecting request for session %s: another request is in flight", target_session_id)
            return None

        context = RequestContext(target_session_id=target_session_id, history=tuple(history))
        self._context = context
        self._last_state = RequestState.SENDING
        task = asyncio.create_task(self._run(context, call), name=f"generate-{target_session_id}")
        context.task = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return context

    def cancel(self, *, user_initiated: bool) -> bool:
        """Abort the in-flight request. Returns ``False`` when there was nothing to cancel."""
        context = self._context
        if context is None:
            return False
        if context.task is not None and not context.task.done():
            context.task.cancel()
        self._finish(context, Cancelled(user_initiated=user_initiated))
        return True

    async def wait(self) -> None:
        """Wait until every started request task has finished."""
        while self._pending:
            await asyncio.wait(set(self._pending))

    async def _run(self, context: RequestContext, call: GenerationCall) -> None:
        try:
            outcome: RequestOutcome = Delivered(await call(context.history))
        except asyncio.CancelledError:
            if not context.finished:
                self._finish(context, Cancelled(user_initiated=False))
            raise
        except GenerationError as exc:
            outcome = Failed(exc)
        except Exception as exc:  # noqa: BLE001 - the slot must be released on any error
            logger.exception("Generation for session %s failed unexpectedly", context.target_session_id)
            outcome = Failed(GenerationError(str(exc)))
        self._finish(context, outcome)

    def _finish(self, context: RequestContext, outcome: RequestOutcome) -> None:
        if context.finished:
            logger.debug(
                "Dropping %s for session %s: request already %s",
                outcome.state.value,
                context.target_session_id,
                context.outcome.state.value,
            )
            return
        context.outcome = outcome
        if self._context is context:
            self._context = None
        self._last_state = outcome.state
        self._on_complete(context, outcome)
