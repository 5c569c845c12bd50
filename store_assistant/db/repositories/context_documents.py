from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from store_assistant.db.models import ContextDocument


class ContextDocumentsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_by_title(self, *, title: str, doc_type: Optional[str] = None) -> Optional[ContextDocument]:
        stmt = select(ContextDocument).where(ContextDocument.title == title)
        if doc_type:
            stmt = stmt.where(ContextDocument.doc_type == doc_type)
        return self.session.scalars(stmt).first()

    def list_relevant(
        self,
        *,
        mode: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 5,
    ) -> list[ContextDocument]:
        """Active documents by priority. Core and rules documents always qualify for a category."""
        stmt = select(ContextDocument).where(ContextDocument.is_active.is_(True))
        if mode and mode != "all":
            stmt = stmt.where(ContextDocument.mode.in_([mode, "all"]))
        if category:
            stmt = stmt.where(
                or_(
                    ContextDocument.category.in_([category, "core"]),
                    ContextDocument.doc_type == "rules",
                )
            )
        stmt = stmt.order_by(ContextDocument.priority.desc(), ContextDocument.created_at.desc()).limit(limit)
        return list(self.session.scalars(stmt).all())

    def list(self, *, include_inactive: bool = False, limit: int = 100) -> list[ContextDocument]:
        stmt = select(ContextDocument)
        if not include_inactive:
            stmt = stmt.where(ContextDocument.is_active.is_(True))
        stmt = stmt.order_by(ContextDocument.priority.desc(), ContextDocument.title).limit(limit)
        return list(self.session.scalars(stmt).all())

    def upsert(self, *, doc_type: str, title: str, content: str, **fields: Any) -> ContextDocument:
        document = self.get_by_title(title=title, doc_type=doc_type)
        if document is None:
            document = ContextDocument(doc_type=doc_type, title=title, content=content, **fields)
            self.session.add(document)
        else:
            document.content = content
            for key, value in fields.items():
                setattr(document, key, value)
        self.session.commit()
        self.session.refresh(document)
        return document
