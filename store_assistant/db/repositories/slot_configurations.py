from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from store_assistant.db.enums import SlotConfigurationStatusEnum
from store_assistant.db.models import SlotConfiguration


class SlotConfigurationsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, *, store_id: str, configuration_id: str) -> Optional[SlotConfiguration]:
        stmt = select(SlotConfiguration).where(
            SlotConfiguration.store_id == store_id,
            SlotConfiguration.id == configuration_id,
        )
        return self.session.scalars(stmt).first()

    def get_draft(self, *, store_id: str, page_type: str) -> Optional[SlotConfiguration]:
        stmt = (
            select(SlotConfiguration)
            .where(
                SlotConfiguration.store_id == store_id,
                SlotConfiguration.page_type == page_type,
                SlotConfiguration.status == SlotConfigurationStatusEnum.draft,
            )
            .order_by(SlotConfiguration.version_number.desc())
        )
        return self.session.scalars(stmt).first()

    def latest_published(self, *, store_id: str, page_type: str) -> Optional[SlotConfiguration]:
        stmt = (
            select(SlotConfiguration)
            .where(
                SlotConfiguration.store_id == store_id,
                SlotConfiguration.page_type == page_type,
                SlotConfiguration.status == SlotConfigurationStatusEnum.published,
                SlotConfiguration.is_active.is_(True),
            )
            .order_by(SlotConfiguration.version_number.desc())
        )
        return self.session.scalars(stmt).first()

    def max_version_number(self, *, store_id: str, page_type: str) -> int:
        stmt = select(func.max(SlotConfiguration.version_number)).where(
            SlotConfiguration.store_id == store_id,
            SlotConfiguration.page_type == page_type,
        )
        return int(self.session.execute(stmt).scalar() or 0)

    def list_history(self, *, store_id: str, page_type: str, limit: int = 20) -> list[SlotConfiguration]:
        stmt = (
            select(SlotConfiguration)
            .where(
                SlotConfiguration.store_id == store_id,
                SlotConfiguration.page_type == page_type,
            )
            .order_by(SlotConfiguration.version_number.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def create(self, *, store_id: str, page_type: str, **fields: Any) -> SlotConfiguration:
        version_number = self.max_version_number(store_id=store_id, page_type=page_type) + 1
        configuration = SlotConfiguration(
            store_id=store_id,
            page_type=page_type,
            version_number=version_number,
            **fields,
        )
        self.session.add(configuration)
        self.session.commit()
        self.session.refresh(configuration)
        return configuration

    def update(self, configuration: SlotConfiguration, /, **fields: Any) -> SlotConfiguration:
        for key, value in fields.items():
            setattr(configuration, key, value)
        self.session.commit()
        self.session.refresh(configuration)
        return configuration

    def deactivate_published(self, *, store_id: str, page_type: str) -> int:
        """Flag every active published version inactive. The caller commits."""
        stmt = select(SlotConfiguration).where(
            SlotConfiguration.store_id == store_id,
            SlotConfiguration.page_type == page_type,
            SlotConfiguration.status == SlotConfigurationStatusEnum.published,
            SlotConfiguration.is_active.is_(True),
        )
        rows = list(self.session.scalars(stmt).all())
        for row in rows:
            row.is_active = False
        return len(rows)
