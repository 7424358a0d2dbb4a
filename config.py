import os
import logging
from dataclasses import dataclass
from typing import Optional, Tuple


def resolve_log_level(name: Optional[str]) -> int:
    # Unknown names fall back to INFO rather than failing the cold start
    level = logging.getLevelName((name or 'INFO').strip().upper())
    return level if isinstance(level, int) else logging.INFO


# Configure logging
logger = logging.getLogger()
logger.setLevel(resolve_log_level(os.environ.get('LOG_LEVEL')))

OPENAI_SESSIONS_URL = "https://api.openai.com/v1/realtime/sessions"

DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:5173",
    "https://realtime-voice.vercel.app",
)

DEFAULT_INSTRUCTIONS = (
    "You are a friendly, helpful voice assistant. "
    "Keep your answers short and conversational, and speak naturally."
)


@dataclass(frozen=True)
class Settings:
    api_key: Optional[str]
    allowed_origins: Tuple[str, ...]
    instructions: str
    rate_limit_table: Optional[str]
    ttl_s: int


def parse_allowed_origins(raw: Optional[str]) -> Tuple[str, ...]:
    """
    Split a comma-separated ALLOWED_ORIGINS value.

    Falls back to the built-in list when the variable is unset. An explicitly
    empty value yields an empty tuple, which disables the origin check.
    """
    if raw is None:
        return DEFAULT_ALLOWED_ORIGINS
    return tuple(entry.strip() for entry in raw.split(',') if entry.strip())


def load_settings() -> Settings:
    # Read on every invocation so key rotation reaches warm containers
    return Settings(
        api_key=os.environ.get('OPENAI_API_KEY') or None,
        allowed_origins=parse_allowed_origins(os.environ.get('ALLOWED_ORIGINS')),
        instructions=os.environ.get('SESSION_INSTRUCTIONS') or DEFAULT_INSTRUCTIONS,
        rate_limit_table=os.environ.get('RATE_LIMIT_TABLE') or None,
        ttl_s=int(os.environ.get('TTL_S', 3600)),
    )
