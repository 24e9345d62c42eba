from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends

from voicechat.config import Configuration
from voicechat.llms import GeminiClient
from voicechat.session import ConversationSessionManager, SessionRepository, SQLiteSessionStore

logger = logging.getLogger(__name__)

_SESSION_MANAGER: Optional[ConversationSessionManager] = None
_GENERATION_CLIENT: Optional[GeminiClient] = None


def initialise_session_manager() -> ConversationSessionManager:
    """Create the process-wide session manager using configuration."""
    global _SESSION_MANAGER, _GENERATION_CLIENT
    if _SESSION_MANAGER is not None:
        return _SESSION_MANAGER

    config = Configuration.from_env()
    store = SQLiteSessionStore(config.session_db_path)
    store.init()
    repository = SessionRepository(store)
    repository.load()

    client = GeminiClient(config.api_url, config.api_key, timeout=config.request_timeout)
    if not client.is_configured:
        logger.warning("GEMINI_API_KEY is missing or malformed; sending messages is disabled")

    _GENERATION_CLIENT = client
    _SESSION_MANAGER = ConversationSessionManager(
        repository,
        client,
        temperature=config.default_temperature,
    )
    logger.info("Initialised session manager with DB path %s", store.db_path)
    return _SESSION_MANAGER


def set_session_manager(manager: Optional[ConversationSessionManager]) -> None:
    global _SESSION_MANAGER
    _SESSION_MANAGER = manager


async def shutdown_session_manager() -> None:
    global _SESSION_MANAGER, _GENERATION_CLIENT
    if _SESSION_MANAGER is not None:
        _SESSION_MANAGER.controller.cancel(user_initiated=False)
        await _SESSION_MANAGER.wait_until_idle()
        _SESSION_MANAGER = None
    if _GENERATION_CLIENT is not None:
        await _GENERATION_CLIENT.aclose()
        _GENERATION_CLIENT = None


def get_session_manager(
    _: ConversationSessionManager = Depends(initialise_session_manager),
) -> ConversationSessionManager:
    if _SESSION_MANAGER is None:
        raise RuntimeError("Session manager has not been initialised")
    return _SESSION_MANAGER
