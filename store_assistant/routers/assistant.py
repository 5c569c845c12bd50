from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from store_assistant.assistant.confirmation import ConfirmationStateMachine
from store_assistant.assistant.engine import AssistantEngine, serialize_response
from store_assistant.assistant.errors import AssistantSessionNotFoundError
from store_assistant.assistant.knowledge import ContextDocumentKnowledge
from store_assistant.assistant.types import HistoryTurn
from store_assistant.auth.dependencies import AuthContext, get_current_user
from store_assistant.config import settings
from store_assistant.db.deps import get_session
from store_assistant.db.repositories.assistant_sessions import AssistantSessionsRepository
from store_assistant.llm.client import LLMClient, TextCompleter
from store_assistant.schemas.assistant import ChatRequest, ChatResponse

router = APIRouter(prefix="/assistant", tags=["assistant"])


def get_completer() -> TextCompleter:
    return LLMClient()


@router.post("/chat", response_model=ChatResponse)
def chat(
    payload: ChatRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    completer: TextCompleter = Depends(get_completer),
) -> dict:
    engine = AssistantEngine(
        session=session, completer=completer, knowledge=ContextDocumentKnowledge(session)
    )
    history = [
        HistoryTurn(role=turn.role, content=turn.content, pending_action=turn.pendingAction)
        for turn in payload.history or []
    ]
    try:
        response = engine.handle_message(
            payload.message,
            store_id=auth.store_id,
            user_id=auth.user_id,
            session_id=payload.sessionId,
            page_type=payload.pageType,
            history=history or None,
        )
    except AssistantSessionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return serialize_response(response)


@router.get("/sessions/{session_id}")
def get_assistant_session(
    session_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> dict:
    repo = AssistantSessionsRepository(session)
    assistant_session = repo.get(store_id=auth.store_id, session_id=session_id)
    if not assistant_session:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assistant session not found")
    confirmation_state = ConfirmationStateMachine(repo, history_window=settings.ASSISTANT_HISTORY_TURNS).state(
        assistant_session
    )
    messages = repo.list_messages(session_id=assistant_session.id)
    return jsonable_encoder(
        {
            "id": assistant_session.id,
            "pageType": assistant_session.page_type,
            "confirmationState": confirmation_state.value,
            "pendingAction": assistant_session.pending_action,
            "createdAt": assistant_session.created_at,
            "messages": [
                {
                    "seq": message.seq,
                    "role": message.role.value,
                    "content": message.content,
                    "data": message.data,
                    "createdAt": message.created_at,
                }
                for message in messages
            ],
        }
    )
