from __future__ import annotations

from dataclasses import dataclass, field

from .loader import get_float_env, get_str_env

DEFAULT_API_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent"
)


@dataclass(kw_only=True)
class Configuration:
    """Runtime settings for the chat client, read from the environment."""

    api_url: str = DEFAULT_API_URL
    api_key: str = ""
    session_db_path: str = "voicechat.db"
    default_temperature: float = 0.7
    request_timeout: float = 60.0
    allowed_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @classmethod
    def from_env(cls) -> "Configuration":
        origins = get_str_env("ALLOWED_ORIGINS", "http://localhost:3000")
        return cls(
            api_url=get_str_env("AI_API_URL", DEFAULT_API_URL),
            api_key=get_str_env("GEMINI_API_KEY"),
            session_db_path=get_str_env("SESSION_DB_PATH", "voicechat.db"),
            default_temperature=get_float_env("DEFAULT_TEMPERATURE", 0.7, minimum=0.0, maximum=1.0),
            request_timeout=get_float_env("REQUEST_TIMEOUT", 60.0, minimum=1.0),
            allowed_origins=[origin.strip() for origin in origins.split(",") if origin.strip()],
        )
