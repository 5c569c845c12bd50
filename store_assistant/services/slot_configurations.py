from __future__ import annotations

import logging
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from store_assistant.assistant.errors import PersistenceConflictError
from store_assistant.db.enums import SlotConfigurationStatusEnum
from store_assistant.db.models import SlotConfiguration
from store_assistant.db.repositories.slot_configurations import SlotConfigurationsRepository


logger = logging.getLogger(__name__)

SlotsMutation = Callable[[dict[str, Any]], dict[str, Any]]


def get_slots(configuration: Optional[SlotConfiguration]) -> dict[str, Any]:
    if configuration is None:
        return {}
    return deepcopy((configuration.configuration or {}).get("slots") or {})


def serialize_configuration(configuration: SlotConfiguration) -> dict[str, Any]:
    return {
        "id": configuration.id,
        "storeId": configuration.store_id,
        "pageType": configuration.page_type,
        "status": configuration.status.value,
        "isActive": configuration.is_active,
        "version_number": configuration.version_number,
        "parent_version_id": configuration.parent_version_id,
        "revision": configuration.revision,
        "hasUnpublishedChanges": configuration.has_unpublished_changes,
        "configuration": configuration.configuration or {"slots": {}},
        "publishedAt": configuration.published_at,
        "updatedAt": configuration.updated_at,
    }


def get_or_create_draft(
    session: Session, *, store_id: str, page_type: str, user_id: Optional[str] = None
) -> SlotConfiguration:
    """Return the draft for (store, page), cloning the latest published version when none exists."""
    repo = SlotConfigurationsRepository(session)
    draft = repo.get_draft(store_id=store_id, page_type=page_type)
    if draft:
        return draft

    published = repo.latest_published(store_id=store_id, page_type=page_type)
    draft = repo.create(
        store_id=store_id,
        page_type=page_type,
        status=SlotConfigurationStatusEnum.draft,
        is_active=False,
        parent_version_id=published.id if published else None,
        configuration={"slots": get_slots(published)},
        has_unpublished_changes=False,
        user_id=user_id,
    )
    logger.info(
        "Created slot configuration draft",
        extra={
            "store_id": store_id,
            "page_type": page_type,
            "draft_id": draft.id,
            "version_number": draft.version_number,
            "cloned_from": draft.parent_version_id,
        },
    )
    return draft


def save_draft_slots(
    session: Session,
    draft: SlotConfiguration,
    slots: dict[str, Any],
    *,
    expected_revision: Optional[int] = None,
) -> SlotConfiguration:
    if draft.status != SlotConfigurationStatusEnum.draft:
        raise ValueError("Only drafts can be edited")
    if expected_revision is not None and expected_revision != draft.revision:
        raise PersistenceConflictError()

    configuration = deepcopy(draft.configuration or {})
    configuration["slots"] = slots
    try:
        return SlotConfigurationsRepository(session).update(
            draft,
            configuration=configuration,
            has_unpublished_changes=True,
        )
    except StaleDataError as exc:
        session.rollback()
        logger.warning(
            "Slot configuration draft changed concurrently",
            extra={"draft_id": draft.id, "store_id": draft.store_id, "page_type": draft.page_type},
        )
        raise PersistenceConflictError() from exc


def mutate_draft(
    session: Session,
    *,
    store_id: str,
    page_type: str,
    mutation: SlotsMutation,
    user_id: Optional[str] = None,
) -> SlotConfiguration:
    """Read-modify-write the draft slots; on a version conflict re-read once and retry."""
    for attempt in range(2):
        if attempt:
            session.expire_all()
        draft = get_or_create_draft(session, store_id=store_id, page_type=page_type, user_id=user_id)
        updated_slots = mutation(get_slots(draft))
        try:
            return save_draft_slots(session, draft, updated_slots)
        except PersistenceConflictError:
            if attempt:
                raise
            logger.info(
                "Retrying draft mutation after conflict",
                extra={"store_id": store_id, "page_type": page_type},
            )
    raise PersistenceConflictError()


def publish_draft(
    session: Session, *, store_id: str, page_type: str, user_id: Optional[str] = None
) -> SlotConfiguration:
    repo = SlotConfigurationsRepository(session)
    draft = repo.get_draft(store_id=store_id, page_type=page_type)
    if not draft:
        raise ValueError(f"No draft to publish for the {page_type} page")

    try:
        repo.deactivate_published(store_id=store_id, page_type=page_type)
        published = repo.update(
            draft,
            status=SlotConfigurationStatusEnum.published,
            is_active=True,
            has_unpublished_changes=False,
            published_at=datetime.now(timezone.utc),
            published_by=user_id,
        )
    except StaleDataError as exc:
        session.rollback()
        raise PersistenceConflictError() from exc

    logger.info(
        "Published slot configuration",
        extra={
            "store_id": store_id,
            "page_type": page_type,
            "configuration_id": published.id,
            "version_number": published.version_number,
        },
    )
    return published


def list_history(session: Session, *, store_id: str, page_type: str, limit: int = 20) -> list[SlotConfiguration]:
    return SlotConfigurationsRepository(session).list_history(store_id=store_id, page_type=page_type, limit=limit)


def revert_to_version(
    session: Session,
    *,
    store_id: str,
    page_type: str,
    version_id: str,
    user_id: Optional[str] = None,
) -> SlotConfiguration:
    """Make the draft a copy of an earlier version. The draft remembers which version it came from."""
    repo = SlotConfigurationsRepository(session)
    target = repo.get(store_id=store_id, configuration_id=version_id)
    if not target or target.page_type != page_type:
        raise ValueError("Version not found")

    draft = get_or_create_draft(session, store_id=store_id, page_type=page_type, user_id=user_id)
    if draft.id == target.id:
        return draft
    configuration = deepcopy(draft.configuration or {})
    configuration["slots"] = get_slots(target)
    try:
        return repo.update(
            draft,
            configuration=configuration,
            parent_version_id=target.id,
            has_unpublished_changes=True,
        )
    except StaleDataError as exc:
        session.rollback()
        raise PersistenceConflictError() from exc
