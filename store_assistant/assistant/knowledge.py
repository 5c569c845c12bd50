from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from store_assistant.config import settings
from store_assistant.db.models import ContextDocument
from store_assistant.db.repositories.context_documents import ContextDocumentsRepository


logger = logging.getLogger(__name__)


def format_document(document: ContextDocument) -> str:
    return f"## {document.title}\n{document.content.strip()}"


class ContextDocumentKnowledge:
    """Reference notes for the classifier, read from the shared context-document table."""

    def __init__(self, session: Session, *, mode: Optional[str] = None, limit: Optional[int] = None) -> None:
        self.repo = ContextDocumentsRepository(session)
        self.mode = mode or settings.ASSISTANT_KNOWLEDGE_MODE
        self.limit = limit or settings.ASSISTANT_KNOWLEDGE_DOCS_LIMIT

    def documents_for(self, message: str, *, page_type: str) -> list[str]:
        documents = self.repo.list_relevant(mode=self.mode, category=page_type, limit=self.limit)
        logger.debug(
            "Loaded assistant context documents",
            extra={"page_type": page_type, "count": len(documents), "titles": [doc.title for doc in documents]},
        )
        return [format_document(document) for document in documents]
