from __future__ import annotations

DEFAULT_TITLE = "New chat"

_MAX_TITLE_LENGTH = 30
_ELLIPSIS = "..."


def is_default_title(title: str) -> bool:
    return title == DEFAULT_TITLE


def derive_title(text: str) -> str:
    """Build a session title from the first user message."""
    return f"{text[:_MAX_TITLE_LENGTH]}{_ELLIPSIS}"
