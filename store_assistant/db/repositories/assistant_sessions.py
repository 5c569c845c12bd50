from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from store_assistant.db.enums import AssistantMessageRoleEnum
from store_assistant.db.models import AssistantMessage, AssistantSession


class AssistantSessionsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, *, store_id: str, session_id: str) -> Optional[AssistantSession]:
        stmt = select(AssistantSession).where(
            AssistantSession.store_id == store_id,
            AssistantSession.id == session_id,
        )
        return self.session.scalars(stmt).first()

    def create(self, *, store_id: str, user_id: str, page_type: str) -> AssistantSession:
        assistant_session = AssistantSession(store_id=store_id, user_id=user_id, page_type=page_type)
        self.session.add(assistant_session)
        self.session.commit()
        self.session.refresh(assistant_session)
        return assistant_session

    def set_pending_action(
        self, assistant_session: AssistantSession, pending_action: Optional[dict[str, Any]]
    ) -> AssistantSession:
        assistant_session.pending_action = pending_action
        self.session.commit()
        self.session.refresh(assistant_session)
        return assistant_session

    def add_message(
        self,
        *,
        session_id: str,
        role: AssistantMessageRoleEnum,
        content: str,
        data: Optional[dict[str, Any]] = None,
    ) -> AssistantMessage:
        next_seq = (
            self.session.execute(
                select(func.max(AssistantMessage.seq)).where(AssistantMessage.session_id == session_id)
            ).scalar()
            or 0
        ) + 1
        message = AssistantMessage(session_id=session_id, seq=next_seq, role=role, content=content, data=data)
        self.session.add(message)
        self.session.commit()
        self.session.refresh(message)
        return message

    def list_messages(self, *, session_id: str, limit: Optional[int] = None) -> list[AssistantMessage]:
        """Return messages oldest first; with `limit`, only the most recent `limit` turns."""
        stmt = (
            select(AssistantMessage)
            .where(AssistantMessage.session_id == session_id)
            .order_by(AssistantMessage.seq.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        messages = list(self.session.scalars(stmt).all())
        messages.reverse()
        return messages
