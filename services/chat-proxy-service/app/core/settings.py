import os
from dataclasses import dataclass


def _split_origins(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    try:
        return max(minimum, int(os.getenv(name, str(default))))
    except ValueError:
        return default


@dataclass
class Settings:
    provider: str
    model: str
    base_url: str
    api_key: str
    temperature: float
    max_output_tokens: int
    retry_max_output_tokens: int
    timeout_ms: int
    max_history_turns: int
    max_sessions: int
    max_reply_chars: int
    preferences_base_url: str
    preferences_timeout_ms: int
    cors_allow_origins: list[str]
    log_level: str


def load_settings() -> Settings:
    max_output_tokens = _env_int("GEN_MAX_OUTPUT_TOKENS", 1024, minimum=1)
    retry_max_output_tokens = _env_int("GEN_RETRY_MAX_OUTPUT_TOKENS", 2048, minimum=1)
    if retry_max_output_tokens <= max_output_tokens:
        retry_max_output_tokens = max_output_tokens * 2
    api_key = os.getenv("GEN_API_KEY", "").strip() or os.getenv("GEMINI_API_KEY", "").strip()
    return Settings(
        provider=os.getenv("GEN_PROVIDER", "toy").strip().lower(),
        model=os.getenv("GEN_MODEL", "gemini-2.5-flash").strip() or "gemini-2.5-flash",
        base_url=os.getenv("GEN_BASE_URL", "https://generativelanguage.googleapis.com/v1beta").rstrip("/"),
        api_key=api_key,
        temperature=float(os.getenv("GEN_TEMPERATURE", "0.6")),
        max_output_tokens=max_output_tokens,
        retry_max_output_tokens=retry_max_output_tokens,
        timeout_ms=_env_int("GEN_TIMEOUT_MS", 0),
        max_history_turns=_env_int("CHAT_MAX_HISTORY_TURNS", 8, minimum=1),
        max_sessions=_env_int("CHAT_MAX_SESSIONS", 0),
        max_reply_chars=_env_int("CHAT_MAX_REPLY_CHARS", 16000, minimum=1),
        preferences_base_url=os.getenv("PREFERENCES_BASE_URL", "http://localhost:3001").strip().rstrip("/"),
        preferences_timeout_ms=_env_int("PREFERENCES_TIMEOUT_MS", 2000, minimum=1),
        cors_allow_origins=_split_origins(os.getenv("CORS_ALLOW_ORIGINS", "")),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )


SETTINGS = load_settings()
