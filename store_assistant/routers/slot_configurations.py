from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from store_assistant.auth.dependencies import AuthContext, get_current_user
from store_assistant.db.deps import get_session
from store_assistant.db.repositories.slot_configurations import SlotConfigurationsRepository
from store_assistant.schemas.slot_configurations import DraftSaveRequest
from store_assistant.services import slot_configurations as slot_service

router = APIRouter(prefix="/slot-configurations", tags=["slot-configurations"])


@router.get("/{page_type}/draft")
def get_draft(
    page_type: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> dict:
    draft = slot_service.get_or_create_draft(
        session, store_id=auth.store_id, page_type=page_type, user_id=auth.user_id
    )
    return jsonable_encoder(slot_service.serialize_configuration(draft))


@router.put("/{page_type}/draft")
def save_draft(
    page_type: str,
    payload: DraftSaveRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> dict:
    draft = slot_service.get_or_create_draft(
        session, store_id=auth.store_id, page_type=page_type, user_id=auth.user_id
    )
    try:
        saved = slot_service.save_draft_slots(session, draft, payload.slots, expected_revision=payload.revision)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return jsonable_encoder(slot_service.serialize_configuration(saved))


@router.post("/{page_type}/publish")
def publish(
    page_type: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> dict:
    try:
        published = slot_service.publish_draft(
            session, store_id=auth.store_id, page_type=page_type, user_id=auth.user_id
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return jsonable_encoder(slot_service.serialize_configuration(published))


@router.get("/{page_type}/published")
def get_published(
    page_type: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> dict:
    published = SlotConfigurationsRepository(session).latest_published(store_id=auth.store_id, page_type=page_type)
    if not published:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No published layout for this page")
    return jsonable_encoder(slot_service.serialize_configuration(published))


@router.get("/{page_type}/history")
def get_history(
    page_type: str,
    limit: int = 20,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> list:
    versions = slot_service.list_history(session, store_id=auth.store_id, page_type=page_type, limit=limit)
    return jsonable_encoder([slot_service.serialize_configuration(version) for version in versions])


@router.post("/{page_type}/revert/{version_id}")
def revert(
    page_type: str,
    version_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> dict:
    try:
        draft = slot_service.revert_to_version(
            session,
            store_id=auth.store_id,
            page_type=page_type,
            version_id=version_id,
            user_id=auth.user_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return jsonable_encoder(slot_service.serialize_configuration(draft))
