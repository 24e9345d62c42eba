"""Async client for the Gemini ``generateContent`` REST endpoint.

Usage:
    async with GeminiClient(api_url, api_key) as client:
        text = await client.generate([HistoryEntry("user", "Hello")], temperature=0.7)
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx

from voicechat.session.errors import ProtocolError, TransportError
from voicechat.session.models import HistoryEntry

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I could not generate a valid response."
_API_KEY_PREFIX = "AIzaSy"


class GeminiClient:
    """Sends a conversation history and returns the first candidate's text.

    Cancelling the awaiting task aborts the underlying HTTP request.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        *,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_url = api_url
        self._api_key = api_key
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url) and self._api_key.startswith(_API_KEY_PREFIX)

    async def __aenter__(self) -> "GeminiClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def generate(self, history: Sequence[HistoryEntry], temperature: float) -> str:
        payload = {
            "contents": [
                {"role": entry.role, "parts": [{"text": entry.text}]} for entry in history
            ],
            "generationConfig": {"temperature": temperature},
        }
        try:
            response = await self._client.post(
                self.api_url,
                params={"key": self._api_key},
                json=payload,
            )
        except httpx.RequestError as exc:
            raise TransportError(f"Generation request failed: {exc.__class__.__name__}") from exc

        if not response.is_success:
            logger.warning("Generation service returned HTTP %s", response.status_code)
            raise ProtocolError(response.status_code, detail=response.text[:200])

        try:
            data = response.json()
        except ValueError:
            logger.warning("Generation service returned a non-JSON body")
            return FALLBACK_REPLY
        return _extract_text(data) or FALLBACK_REPLY


def _extract_text(data: Any) -> str:
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return ""
    return text.strip() if isinstance(text, str) else ""
