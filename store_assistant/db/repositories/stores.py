from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from store_assistant.db.models import Store


class StoresRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, store_id: str) -> Optional[Store]:
        return self.session.scalars(select(Store).where(Store.id == store_id)).first()

    def create(self, *, name: str, store_id: Optional[str] = None, slug: Optional[str] = None) -> Store:
        store = Store(name=name, slug=slug)
        if store_id:
            store.id = store_id
        self.session.add(store)
        self.session.commit()
        self.session.refresh(store)
        return store
