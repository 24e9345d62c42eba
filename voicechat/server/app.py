# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from voicechat import __version__
from voicechat.config import Configuration

from .dependencies import initialise_session_manager, shutdown_session_manager
from .router import router as chat_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    initialise_session_manager()
    try:
        yield
    finally:
        await shutdown_session_manager()


app = FastAPI(
    title="VoiceChat API",
    description="Multi-session chat client for a remote text-generation service",
    version=__version__,
    lifespan=lifespan,
)

allowed_origins = Configuration.from_env().allowed_origins
logger.info("Allowed origins: %s", allowed_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(chat_router)
