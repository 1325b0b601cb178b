import logging
import uuid
from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from app.api.schemas import ChatRequest, ChatResponse, ClearSessionRequest, ErrorResponse
from app.core.chat import ValidationError, clear_session, handle_chat
from app.core.generation import UpstreamFailure
from app.core.metrics import metrics

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/metrics")
def metrics_endpoint():
    return metrics.snapshot()


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
@router.post("/api/chat", response_model=ChatResponse, response_model_exclude_none=True, include_in_schema=False)
async def chat(request: Request, response: Response):
    trace_id, request_id = _extract_ids(request)
    headers = _response_headers(trace_id, request_id)
    body = await _read_body(request)
    if body is None:
        metrics.inc("chat_requests_total", {"result": "invalid_json"})
        return _error_response(400, "Request body must be a JSON object.", headers)

    payload = ChatRequest(**body)
    try:
        reply = await handle_chat(payload.message, session_id=payload.session_id, phone=payload.phone)
    except ValidationError as exc:
        metrics.inc("chat_requests_total", {"result": "invalid_message"})
        return _error_response(400, str(exc), headers)
    except UpstreamFailure as exc:
        metrics.inc("chat_requests_total", {"result": "upstream_failure"})
        logger.error("Generation failed trace_id=%s request_id=%s: %s", trace_id, request_id, exc, exc_info=exc)
        return _error_response(500, "AI error", headers)

    metrics.inc("chat_requests_total", {"result": "truncated" if reply.truncated else "ok"})
    response.headers.update(headers)
    return reply.to_payload()


@router.post("/chat/clear-session")
@router.post("/api/clear-session", include_in_schema=False)
async def chat_clear_session(request: Request):
    trace_id, request_id = _extract_ids(request)
    body = await _read_body(request)
    payload = ClearSessionRequest(**(body or {}))
    result = clear_session(payload.session_id)
    return JSONResponse(content=result, headers=_response_headers(trace_id, request_id))


async def _read_body(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except Exception:
        return None
    if not isinstance(body, dict):
        return None
    return body


def _extract_ids(request: Request) -> tuple[str, str]:
    trace_id = request.headers.get("x-trace-id")
    request_id = request.headers.get("x-request-id")
    if not trace_id:
        trace_id = f"trace_{uuid.uuid4().hex}"
    if not request_id:
        request_id = f"req_{uuid.uuid4().hex}"
    return trace_id, request_id


def _error_response(status_code: int, message: str, headers: dict[str, str]) -> JSONResponse:
    payload = ErrorResponse(message=message)
    return JSONResponse(status_code=status_code, content={"success": payload.success, "message": payload.message}, headers=headers)


def _response_headers(trace_id: str, request_id: str) -> dict[str, str]:
    return {"x-trace-id": trace_id, "x-request-id": request_id}
