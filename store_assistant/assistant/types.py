from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from sqlalchemy.orm import Session

from store_assistant.assistant.hierarchy import get_hierarchy
from store_assistant.assistant.slot_resolver import SlotChooser, SlotResolver
from store_assistant.llm.client import TextCompleter


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PendingAction(BaseModel):
    """A tool call held back until the user confirms it on a later turn."""

    model_config = ConfigDict(extra="ignore")

    kind: str
    payload: dict[str, Any] = Field(default_factory=dict)
    originalMessage: str = ""
    question: Optional[str] = None
    candidateId: Optional[str] = None
    expiresAt: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def tool(self) -> str:
        return self.kind

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expires_at = self.expiresAt
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return (now or utc_now()) >= expires_at

    def to_tool_call(self) -> dict[str, Any]:
        return {**self.payload, "tool": self.kind}


class ActionResult(BaseModel):
    """
    Outcome of one executed tool call:
    - message: user-facing sentence
    - data: structured payload for the UI (no reverse parsing of text)
    - needsConfirmation/pendingAction: set when the tool is waiting for a "yes"
    """

    model_config = ConfigDict(extra="forbid")

    tool: str
    success: bool
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    needsConfirmation: bool = False
    pendingAction: Optional[PendingAction] = None
    refreshPreview: bool = False


class Intent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    intent: str = "chat"
    tool: Optional[str] = None
    args: dict[str, Any] = Field(default_factory=dict)
    message: Optional[str] = None
    confidence: float = 0.5
    entity: Optional[str] = None
    operation: Optional[str] = None

    def to_tool_call(self) -> Optional[dict[str, Any]]:
        if not self.tool:
            return None
        return {**self.args, "tool": self.tool}


@dataclass
class HistoryTurn:
    role: str
    content: str
    pending_action: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class ClassifierContext:
    page_type: str
    available_slots: list[str] = field(default_factory=list)
    rag_docs: list[str] = field(default_factory=list)
    learned_examples: list[dict[str, Any]] = field(default_factory=list)
    conversation_history: list[HistoryTurn] = field(default_factory=list)


@dataclass(frozen=True)
class ToolContext:
    session: Session
    store_id: str
    user_id: str
    page_type: str
    assistant_session_id: Optional[str] = None
    completer: Optional[TextCompleter] = None
    slot_chooser: Optional[SlotChooser] = None
    original_message: str = ""
    confirmed: bool = False
    suggestion_limit: int = 3
    _resolvers: dict[str, SlotResolver] = field(default_factory=dict, compare=False, repr=False)

    def resolver_for(self, page_type: Optional[str] = None) -> SlotResolver:
        """One resolver per page type per request, so repeated references hit its cache."""
        key = page_type or self.page_type
        resolver = self._resolvers.get(key)
        if resolver is None:
            resolver = SlotResolver(page_type=key, chooser=self.slot_chooser, suggestion_limit=self.suggestion_limit)
            self._resolvers[key] = resolver
        return resolver

    def hierarchy_for(self, page_type: Optional[str] = None):
        return get_hierarchy(page_type or self.page_type)
