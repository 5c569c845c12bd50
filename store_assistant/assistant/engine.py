from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from sqlalchemy.orm import Session

from store_assistant.assistant.classifier import IntentClassifier
from store_assistant.assistant.confirmation import ConfirmationStateMachine
from store_assistant.assistant.errors import AssistantSessionNotFoundError
from store_assistant.assistant.executor import ActionExecutor
from store_assistant.assistant.knowledge import ContextDocumentKnowledge
from store_assistant.assistant.slot_resolver import CompleterSlotChooser
from store_assistant.assistant.training import TrainingRecorder
from store_assistant.assistant.types import (
    ActionResult,
    ClassifierContext,
    HistoryTurn,
    Intent,
    PendingAction,
    ToolContext,
)
from store_assistant.config import settings
from store_assistant.db.enums import AssistantMessageRoleEnum
from store_assistant.db.models import AssistantSession
from store_assistant.db.repositories.assistant_sessions import AssistantSessionsRepository
from store_assistant.db.repositories.slot_configurations import SlotConfigurationsRepository
from store_assistant.llm.client import TextCompleter
from store_assistant.observability import AssistantTraceContext, bind_trace_context, start_langfuse_span
from store_assistant.services import slot_configurations as slot_service


logger = logging.getLogger(__name__)

_DEFAULT_CHAT_REPLY = "How can I help with your store?"


class KnowledgeSource(Protocol):
    def documents_for(self, message: str, *, page_type: str) -> list[str]: ...


@dataclass
class EngineResponse:
    session_id: str
    message: str
    intents: list[Intent] = field(default_factory=list)
    results: list[ActionResult] = field(default_factory=list)
    pending_action: Optional[PendingAction] = None
    candidate_id: Optional[str] = None

    @property
    def needs_confirmation(self) -> bool:
        return self.pending_action is not None

    @property
    def refresh_preview(self) -> bool:
        return any(result.refreshPreview for result in self.results)


class AssistantEngine:
    """
    Runs one conversational turn:
    confirmation replay, else classify -> execute -> persist pending state -> record outcome.
    """

    def __init__(
        self,
        *,
        session: Session,
        completer: TextCompleter,
        executor: Optional[ActionExecutor] = None,
        knowledge: Optional[KnowledgeSource] = None,
        model: Optional[str] = None,
    ) -> None:
        self.session = session
        self.completer = completer
        self.classifier = IntentClassifier(completer, model=model)
        self.executor = executor or ActionExecutor()
        self.knowledge = knowledge or ContextDocumentKnowledge(session)
        self.sessions_repo = AssistantSessionsRepository(session)
        self.confirmations = ConfirmationStateMachine(
            self.sessions_repo, history_window=settings.ASSISTANT_HISTORY_TURNS
        )
        self.training = TrainingRecorder(session)

    def _load_session(
        self, *, store_id: str, user_id: str, session_id: Optional[str], page_type: Optional[str]
    ) -> AssistantSession:
        if session_id:
            existing = self.sessions_repo.get(store_id=store_id, session_id=session_id)
            if existing is None:
                raise AssistantSessionNotFoundError(session_id)
            return existing
        return self.sessions_repo.create(
            store_id=store_id,
            user_id=user_id,
            page_type=page_type or settings.ASSISTANT_DEFAULT_PAGE_TYPE,
        )

    def _tool_context(
        self, *, assistant_session: AssistantSession, page_type: str, message: str, confirmed: bool
    ) -> ToolContext:
        return ToolContext(
            session=self.session,
            store_id=assistant_session.store_id,
            user_id=assistant_session.user_id,
            page_type=page_type,
            assistant_session_id=assistant_session.id,
            completer=self.completer,
            slot_chooser=CompleterSlotChooser(self.completer),
            original_message=message,
            confirmed=confirmed,
            suggestion_limit=settings.SLOT_SUGGESTION_LIMIT,
        )

    def _server_history(self, assistant_session: AssistantSession) -> list[HistoryTurn]:
        messages = self.sessions_repo.list_messages(
            session_id=assistant_session.id, limit=settings.ASSISTANT_HISTORY_TURNS
        )
        return [
            HistoryTurn(
                role=message.role.value,
                content=message.content,
                pending_action=(message.data or {}).get("pendingAction"),
            )
            for message in messages
        ]

    def _available_slots(self, *, store_id: str, page_type: str, ctx: ToolContext) -> list[str]:
        repo = SlotConfigurationsRepository(self.session)
        configuration = repo.get_draft(store_id=store_id, page_type=page_type) or repo.latest_published(
            store_id=store_id, page_type=page_type
        )
        return ctx.hierarchy_for(page_type).known_ids(slot_service.get_slots(configuration))

    def _finish(
        self,
        *,
        assistant_session: AssistantSession,
        intents: list[Intent],
        results: list[ActionResult],
        reply: str,
        candidate_id: Optional[str],
    ) -> EngineResponse:
        new_pending = next((result.pendingAction for result in results if result.pendingAction), None)
        if new_pending is not None:
            new_pending = new_pending.model_copy(update={"candidateId": candidate_id})
            self.confirmations.remember(assistant_session, new_pending)
        else:
            # Any turn that does not produce a new pending action supersedes the old one.
            self.confirmations.clear(assistant_session)

        self.sessions_repo.add_message(
            session_id=assistant_session.id,
            role=AssistantMessageRoleEnum.assistant,
            content=reply,
            data={
                "intents": [intent.model_dump(mode="json") for intent in intents],
                "results": [result.model_dump(mode="json") for result in results],
                "pendingAction": new_pending.model_dump(mode="json") if new_pending else None,
                "candidateId": candidate_id,
            },
        )
        return EngineResponse(
            session_id=assistant_session.id,
            message=reply,
            intents=intents,
            results=results,
            pending_action=new_pending,
            candidate_id=candidate_id,
        )

    def handle_message(
        self,
        message: str,
        *,
        store_id: str,
        user_id: str,
        session_id: Optional[str] = None,
        page_type: Optional[str] = None,
        history: Optional[list[HistoryTurn]] = None,
    ) -> EngineResponse:
        assistant_session = self._load_session(
            store_id=store_id, user_id=user_id, session_id=session_id, page_type=page_type
        )
        page_type = page_type or assistant_session.page_type
        trace_context = AssistantTraceContext(
            name="assistant.turn",
            session_id=assistant_session.id,
            user_id=user_id,
            metadata={"storeId": store_id, "pageType": page_type},
            tags=["assistant"],
        )
        with bind_trace_context(trace_context), start_langfuse_span(
            name="assistant.handle_message", input={"message": message}
        ):
            # Client-sent history only matters for a session the server has not seen before.
            client_history = history if not session_id else None
            pending = self.confirmations.take_confirmed(assistant_session, message, client_history)

            self.sessions_repo.add_message(
                session_id=assistant_session.id, role=AssistantMessageRoleEnum.user, content=message
            )
            if pending is not None:
                return self._replay(assistant_session, pending, page_type=page_type, message=message)
            return self._classify_and_execute(
                assistant_session, message, page_type=page_type, client_history=client_history
            )

    def _replay(
        self, assistant_session: AssistantSession, pending: PendingAction, *, page_type: str, message: str
    ) -> EngineResponse:
        ctx = self._tool_context(
            assistant_session=assistant_session,
            page_type=page_type,
            message=pending.originalMessage or message,
            confirmed=True,
        )
        result = self.executor.execute(pending.to_tool_call(), ctx)
        self.training.resolve_confirmation(
            store_id=assistant_session.store_id,
            candidate_id=pending.candidateId,
            results=[result],
            reply=result.message,
        )
        intent = Intent(intent="confirmation", tool=pending.kind, args=pending.payload, confidence=1.0)
        return self._finish(
            assistant_session=assistant_session,
            intents=[intent],
            results=[result],
            reply=result.message,
            candidate_id=pending.candidateId,
        )

    def _classify_and_execute(
        self,
        assistant_session: AssistantSession,
        message: str,
        *,
        page_type: str,
        client_history: Optional[list[HistoryTurn]],
    ) -> EngineResponse:
        ctx = self._tool_context(
            assistant_session=assistant_session, page_type=page_type, message=message, confirmed=False
        )
        history = client_history or self._server_history(assistant_session)[:-1]
        context = ClassifierContext(
            page_type=page_type,
            available_slots=self._available_slots(store_id=assistant_session.store_id, page_type=page_type, ctx=ctx),
            rag_docs=self.knowledge.documents_for(message, page_type=page_type),
            learned_examples=self.training.learned_examples(
                store_id=assistant_session.store_id, limit=settings.ASSISTANT_LEARNED_EXAMPLES_LIMIT
            ),
            conversation_history=history[-settings.ASSISTANT_HISTORY_TURNS :],
        )
        intents = self.classifier.classify(message, context)
        candidate = self.training.capture(
            store_id=assistant_session.store_id,
            user_prompt=message,
            intents=intents,
            session_id=assistant_session.id,
            user_id=assistant_session.user_id,
        )

        calls = [call for call in (intent.to_tool_call() for intent in intents) if call is not None]
        if not calls:
            reply = next((intent.message for intent in intents if intent.message), None) or _DEFAULT_CHAT_REPLY
            self.training.record_chat(candidate, reply=reply)
            return self._finish(
                assistant_session=assistant_session,
                intents=intents,
                results=[],
                reply=reply,
                candidate_id=candidate.id,
            )

        results = self.executor.execute_batch(calls, ctx)
        reply = " ".join(result.message for result in results)
        self.training.record_results(candidate, results, reply=reply)
        logger.info(
            "Assistant turn executed",
            extra={
                "session_id": assistant_session.id,
                "tools": [result.tool for result in results],
                "failed": [result.tool for result in results if not result.success],
            },
        )
        return self._finish(
            assistant_session=assistant_session,
            intents=intents,
            results=results,
            reply=reply,
            candidate_id=candidate.id,
        )


def serialize_response(response: EngineResponse) -> dict[str, Any]:
    return {
        "sessionId": response.session_id,
        "message": response.message,
        "intents": [intent.model_dump(mode="json") for intent in response.intents],
        "results": [result.model_dump(mode="json") for result in response.results],
        "pendingAction": response.pending_action.model_dump(mode="json") if response.pending_action else None,
        "needsConfirmation": response.needs_confirmation,
        "refreshPreview": response.refresh_preview,
        "candidateId": response.candidate_id,
    }
