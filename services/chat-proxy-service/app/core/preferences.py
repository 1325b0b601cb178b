from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional
from urllib.parse import quote

import httpx

from app.core.metrics import metrics
from app.core.settings import SETTINGS

logger = logging.getLogger(__name__)

PreferenceKind = Literal["labels", "absent", "raw"]


@dataclass(frozen=True)
class PreferenceResult:
    kind: PreferenceKind
    labels: tuple[str, ...] = ()
    raw: Any = None

    @property
    def value(self) -> Any:
        """What the prompt builder consumes: labels, the raw body, or None."""
        if self.kind == "labels":
            return list(self.labels)
        if self.kind == "raw":
            return self.raw
        return None


ABSENT = PreferenceResult(kind="absent")


def _string_list(value: Any) -> Optional[list[str]]:
    if not isinstance(value, list) or not value:
        return None
    return [str(item) for item in value]


def interpret_preferences(data: Any) -> PreferenceResult:
    if not data:
        return ABSENT
    if isinstance(data, dict):
        labels = _string_list(data.get("labels"))
        if labels:
            return PreferenceResult(kind="labels", labels=tuple(labels))
        preferences = _string_list(data.get("preferences"))
        if preferences:
            return PreferenceResult(kind="labels", labels=tuple(preferences))
    return PreferenceResult(kind="raw", raw=data)


def _preferences_url(base_url: str, identifier: str) -> str:
    return f"{base_url}/api/preferences/{quote(identifier, safe='')}"


async def resolve_preferences(
    identifier: Optional[str],
    *,
    base_url: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PreferenceResult:
    """Look up preference labels for a caller; every failure collapses to ABSENT."""
    key = str(identifier or "").strip()
    if not key:
        return ABSENT
    resolved_base = (SETTINGS.preferences_base_url if base_url is None else base_url).rstrip("/")
    if not resolved_base:
        return ABSENT
    timeout = (timeout_ms if timeout_ms is not None else SETTINGS.preferences_timeout_ms) / 1000.0

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(_preferences_url(resolved_base, key))
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPStatusError as exc:
        metrics.inc("chat_preferences_lookup_total", {"result": f"http_{exc.response.status_code}"})
        logger.warning("Preference lookup returned status %s", exc.response.status_code)
        return ABSENT
    except httpx.HTTPError as exc:
        metrics.inc("chat_preferences_lookup_total", {"result": "unavailable"})
        logger.warning("Preference lookup failed: %s", exc)
        return ABSENT
    except ValueError as exc:
        metrics.inc("chat_preferences_lookup_total", {"result": "invalid_json"})
        logger.warning("Preference lookup returned malformed JSON: %s", exc)
        return ABSENT

    result = interpret_preferences(data)
    metrics.inc("chat_preferences_lookup_total", {"result": result.kind})
    return result
