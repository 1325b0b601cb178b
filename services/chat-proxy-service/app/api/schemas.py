from typing import Any, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    phone: Optional[Any] = None
    message: Optional[Any] = None
    session_id: Optional[Any] = Field(default=None, alias="sessionId")


class ClearSessionRequest(BaseModel):
    session_id: Optional[Any] = Field(default=None, alias="sessionId")


class ChatResponse(BaseModel):
    success: bool = True
    reply: str
    truncated: Optional[bool] = None


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
