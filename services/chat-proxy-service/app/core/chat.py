from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from app.core.generation import GenerationProvider, build_provider, generate_with_retry
from app.core.metrics import metrics
from app.core.preferences import resolve_preferences
from app.core.prompt import render_prompt
from app.core.session_store import ANONYMOUS_SESSION_ID, STORE, SessionStore, Turn
from app.core.settings import SETTINGS

logger = logging.getLogger(__name__)

TRUNCATION_NOTE = "\n\n[Note: response may have been truncated. You can ask the assistant to continue.]"


class ValidationError(ValueError):
    pass


@dataclass(frozen=True)
class ChatReply:
    reply: str
    truncated: bool
    session_id: str

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": True, "reply": self.reply}
        if self.truncated:
            payload["truncated"] = True
        return payload


def resolve_session_id(raw: Any) -> str:
    if isinstance(raw, str) and raw:
        return raw
    return ANONYMOUS_SESSION_ID


def resolve_identifier(raw: Any) -> Optional[str]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return str(raw)
    if isinstance(raw, str):
        return raw
    return None


def validate_message(message: Any) -> str:
    if not isinstance(message, str) or not message:
        raise ValidationError("message required")
    return message


_provider: Optional[GenerationProvider] = None


def get_provider() -> GenerationProvider:
    global _provider
    if _provider is None:
        _provider = build_provider(SETTINGS)
    return _provider


def set_provider(provider: Optional[GenerationProvider]) -> None:
    global _provider
    _provider = provider


async def handle_chat(
    message: Any,
    *,
    session_id: Any = None,
    phone: Any = None,
    store: Optional[SessionStore] = None,
    provider: Optional[GenerationProvider] = None,
) -> ChatReply:
    """Run one chat turn.

    Raises ValidationError for a missing message and UpstreamFailure when
    generation fails; the session keeps the user turn in the failure case.
    """
    text = validate_message(message)
    sid = resolve_session_id(session_id)
    sessions = store if store is not None else STORE
    generator = provider if provider is not None else get_provider()

    preferences = await resolve_preferences(resolve_identifier(phone))

    sessions.append(sid, Turn(role="user", content=text))
    recent_turns = sessions.recent(sid, SETTINGS.max_history_turns)
    prompt = render_prompt(preferences.value, recent_turns)

    outcome = await generate_with_retry(prompt, generator)

    sessions.append(sid, Turn(role="assistant", content=outcome.assistant_text))

    reply = outcome.assistant_text
    if outcome.truncated:
        reply = reply + TRUNCATION_NOTE
    logger.info(
        "chat turn session=%s attempts=%d finish_reason=%s truncated=%s sanitized=%s",
        sid,
        outcome.attempts,
        outcome.finish_reason,
        outcome.truncated,
        outcome.sanitized,
    )
    return ChatReply(reply=reply, truncated=outcome.truncated, session_id=sid)


def clear_session(session_id: Any, store: Optional[SessionStore] = None) -> dict[str, Any]:
    sessions = store if store is not None else STORE
    removed = sessions.clear(resolve_session_id(session_id))
    metrics.inc("chat_session_clear_total", {"existed": "true" if removed else "false"})
    return {"success": True}
