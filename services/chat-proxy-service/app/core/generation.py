from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Literal, Optional, Protocol

import httpx

from app.core.metrics import metrics
from app.core.sanitize import sanitize
from app.core.settings import SETTINGS, Settings

logger = logging.getLogger(__name__)

UNRECOGNIZED_DUMP_CHARS = 2000
TRUNCATION_REASONS = {"max_tokens", "max_output_tokens"}
_MAX_TOKENS_ERROR_RE = re.compile(r"max[_ ]tokens", flags=re.IGNORECASE)
_USER_LINE_RE = re.compile(r"^User: (.*)$", flags=re.MULTILINE)

ShapeKind = Literal["text", "outputs", "candidates", "unrecognized"]


class UpstreamFailure(Exception):
    """Generation failed with a non-truncation error or after the retry."""


class ProviderError(Exception):
    pass


@dataclass(frozen=True)
class GenerationConfig:
    temperature: float
    max_output_tokens: int

    def to_payload(self) -> dict[str, Any]:
        return {"temperature": self.temperature, "maxOutputTokens": self.max_output_tokens}


@dataclass(frozen=True)
class ExtractedText:
    kind: ShapeKind
    text: str


@dataclass(frozen=True)
class GenerationOutcome:
    assistant_text: str
    finish_reason: Optional[str]
    truncated: bool
    attempts: int
    sanitized: bool = False


class GenerationProvider(Protocol):
    async def generate(self, model: str, prompt: str, config: GenerationConfig) -> Any:
        ...


def _first(container: Any) -> Any:
    if isinstance(container, list) and container:
        return container[0]
    return None


def _stringify(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def _outputs_content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list) and content and isinstance(content[0], dict) and content[0].get("text"):
        return str(content[0]["text"])
    if isinstance(content, dict) and content.get("text"):
        return str(content["text"])
    return _stringify(content)


def _candidate_content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        parts = content.get("parts")
        if isinstance(parts, list):
            texts = [part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
            if texts:
                return "".join(texts)
    return _stringify(content)


def extract_text(response: Any) -> ExtractedText:
    """Pull assistant text out of the known response shapes, in priority order."""
    if isinstance(response, dict):
        text = response.get("text")
        if isinstance(text, str) and text:
            return ExtractedText(kind="text", text=text)

        output = _first(response.get("outputs"))
        if isinstance(output, dict) and output.get("content"):
            return ExtractedText(kind="outputs", text=_outputs_content_text(output["content"]))

        candidate = _first(response.get("candidates"))
        if isinstance(candidate, dict) and candidate.get("content"):
            return ExtractedText(kind="candidates", text=_candidate_content_text(candidate["content"]))

    return ExtractedText(kind="unrecognized", text=_stringify(response)[:UNRECOGNIZED_DUMP_CHARS])


def extract_finish_reason(response: Any) -> Optional[str]:
    if not isinstance(response, dict):
        return None
    for container in ("candidates", "outputs"):
        item = _first(response.get(container))
        if not isinstance(item, dict):
            continue
        reason = item.get("finishReason") or item.get("finish_reason")
        if reason:
            return str(reason)
    return None


def is_truncation_reason(reason: Optional[str]) -> bool:
    if not reason:
        return False
    return reason.strip().lower() in TRUNCATION_REASONS


def mentions_max_tokens(exc: BaseException) -> bool:
    return bool(_MAX_TOKENS_ERROR_RE.search(str(exc)))


class GeminiProvider:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_ms: int = 0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_ms = timeout_ms
        self._transport = transport

    def _url(self, model: str) -> str:
        name = model if model.startswith("models/") else f"models/{model}"
        return f"{self.base_url}/{name}:generateContent"

    def _headers(self) -> dict[str, str]:
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["x-goog-api-key"] = self.api_key
        return headers

    async def generate(self, model: str, prompt: str, config: GenerationConfig) -> Any:
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": config.to_payload(),
        }
        timeout = self.timeout_ms / 1000.0 if self.timeout_ms > 0 else None
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            response = await client.post(self._url(model), json=body, headers=self._headers())
            if response.status_code >= 400:
                raise ProviderError(f"generateContent returned {response.status_code}: {response.text[:500]}")
            return response.json()


class ToyProvider:
    """Deterministic local provider; echoes the latest user line."""

    async def generate(self, model: str, prompt: str, config: GenerationConfig) -> Any:
        matches = _USER_LINE_RE.findall(prompt)
        question = matches[-1].strip() if matches else ""
        answer = f"Happy to help with: {question}" if question else "How can I help you today?"
        return {
            "candidates": [
                {"content": {"role": "model", "parts": [{"text": answer}]}, "finishReason": "STOP"},
            ]
        }


def build_provider(settings: Settings = SETTINGS) -> GenerationProvider:
    if settings.provider == "gemini":
        if not settings.api_key:
            logger.warning("GEN_PROVIDER=gemini but no API key is configured")
        return GeminiProvider(settings.base_url, settings.api_key, settings.timeout_ms)
    if settings.provider != "toy":
        logger.warning("Unknown GEN_PROVIDER %r, falling back to toy provider", settings.provider)
    return ToyProvider()


async def generate_with_retry(
    prompt: str,
    provider: GenerationProvider,
    *,
    model: Optional[str] = None,
    config: Optional[GenerationConfig] = None,
    retry_max_output_tokens: Optional[int] = None,
) -> GenerationOutcome:
    """Call the provider with one retry reserved for truncation.

    Attempt 0 runs at the baseline token ceiling. A max-tokens finish reason or
    an error mentioning max tokens moves to attempt 1 with a larger ceiling and
    the same prompt; whatever attempt 1 returns is accepted. Every other error
    is raised as UpstreamFailure.
    """
    resolved_model = model or SETTINGS.model
    current = config or GenerationConfig(SETTINGS.temperature, SETTINGS.max_output_tokens)
    retry_ceiling = retry_max_output_tokens if retry_max_output_tokens is not None else SETTINGS.retry_max_output_tokens
    retry_ceiling = max(retry_ceiling, current.max_output_tokens + 1)
    truncated = False

    for attempt in range(2):
        metrics.inc("chat_generation_attempts_total", {"attempt": str(attempt)})
        try:
            response = await provider.generate(resolved_model, prompt, current)
        except Exception as exc:
            if attempt == 0 and mentions_max_tokens(exc):
                logger.warning("Generation error mentions max tokens; retrying with maxOutputTokens=%d", retry_ceiling)
                metrics.inc("chat_generation_retry_total", {"reason": "error"})
                current = replace(current, max_output_tokens=retry_ceiling)
                continue
            raise UpstreamFailure(f"generation failed on attempt {attempt}: {exc}") from exc

        extracted = extract_text(response)
        cleaned = sanitize(extracted.text, response, force=extracted.kind == "unrecognized")
        finish_reason = extract_finish_reason(response)

        if is_truncation_reason(finish_reason):
            truncated = True
            if attempt == 0:
                logger.warning(
                    "Generation finished with %s; retrying with maxOutputTokens=%d", finish_reason, retry_ceiling
                )
                metrics.inc("chat_generation_retry_total", {"reason": "finish_reason"})
                current = replace(current, max_output_tokens=retry_ceiling)
                continue

        return GenerationOutcome(
            assistant_text=cleaned.text,
            finish_reason=finish_reason,
            truncated=truncated,
            attempts=attempt + 1,
            sanitized=cleaned.replaced,
        )

    raise UpstreamFailure("generation failed after retry")
