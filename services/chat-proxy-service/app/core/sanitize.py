from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional

from app.core.metrics import metrics
from app.core.settings import SETTINGS

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Sorry, the assistant returned an internal message. Please try again or ask to continue."
PAYLOAD_MARKERS = ('"candidates"', '"finishReason"', '"finish_reason"')

SanitizeSource = Literal["clean", "outputs", "fallback"]


@dataclass(frozen=True)
class SanitizeResult:
    text: str
    replaced: bool
    source: SanitizeSource


def looks_like_payload_dump(text: Any, max_chars: Optional[int] = None) -> bool:
    if not isinstance(text, str):
        return True
    limit = SETTINGS.max_reply_chars if max_chars is None else max_chars
    trimmed = text.strip()
    if trimmed.startswith("{") or trimmed.startswith("["):
        return True
    if any(marker in text for marker in PAYLOAD_MARKERS):
        return True
    return len(text) > limit


def _outputs_text(item: Any) -> Optional[str]:
    if not isinstance(item, dict):
        return None
    content = item.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list) and content and isinstance(content[0], dict):
        text = content[0].get("text")
        if isinstance(text, str):
            return text
    return None


def find_safe_fallback(raw_response: Any, max_chars: Optional[int] = None) -> Optional[str]:
    if not isinstance(raw_response, dict):
        return None
    outputs = raw_response.get("outputs")
    if not isinstance(outputs, list):
        return None
    for item in outputs:
        text = _outputs_text(item)
        if not text or not text.strip():
            continue
        if looks_like_payload_dump(text, max_chars):
            continue
        return text
    return None


def _describe_raw(raw_response: Any) -> str:
    try:
        return json.dumps(raw_response, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return repr(raw_response)


def sanitize(
    text: Any,
    raw_response: Any = None,
    *,
    max_chars: Optional[int] = None,
    force: bool = False,
) -> SanitizeResult:
    """Replace assistant text that looks like a raw upstream payload.

    The raw response is written to the operator log only. Clean text and the
    fallback reply both pass through unchanged, so the call is idempotent.
    ``force`` skips classification for text that is known to be a dump of an
    unrecognized response.
    """
    if not force and not looks_like_payload_dump(text, max_chars):
        return SanitizeResult(text=text, replaced=False, source="clean")

    logger.warning(
        "Generation returned a payload-like reply; hiding it from the client. raw_response=%s",
        _describe_raw(raw_response if raw_response is not None else text),
    )
    fallback = find_safe_fallback(raw_response, max_chars)
    if fallback is not None:
        metrics.inc("chat_sanitizer_replaced_total", {"source": "outputs"})
        return SanitizeResult(text=fallback, replaced=True, source="outputs")
    metrics.inc("chat_sanitizer_replaced_total", {"source": "fallback"})
    return SanitizeResult(text=FALLBACK_REPLY, replaced=True, source="fallback")
