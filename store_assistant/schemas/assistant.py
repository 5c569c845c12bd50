from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class ChatHistoryTurn(BaseModel):
    role: str
    content: str
    pendingAction: Optional[dict[str, Any]] = None


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    sessionId: Optional[str] = None
    pageType: Optional[str] = None
    history: Optional[list[ChatHistoryTurn]] = None


class ChatResponse(BaseModel):
    sessionId: str
    message: str
    intents: list[dict[str, Any]] = Field(default_factory=list)
    results: list[dict[str, Any]] = Field(default_factory=list)
    pendingAction: Optional[dict[str, Any]] = None
    needsConfirmation: bool = False
    refreshPreview: bool = False
    candidateId: Optional[str] = None
