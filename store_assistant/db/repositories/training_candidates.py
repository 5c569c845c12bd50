from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from store_assistant.db.enums import TrainingOutcomeEnum
from store_assistant.db.models import TrainingCandidate


class TrainingCandidatesRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, *, store_id: str, candidate_id: str) -> Optional[TrainingCandidate]:
        stmt = select(TrainingCandidate).where(
            TrainingCandidate.store_id == store_id,
            TrainingCandidate.id == candidate_id,
        )
        return self.session.scalars(stmt).first()

    def list(
        self,
        *,
        store_id: str,
        outcome: Optional[TrainingOutcomeEnum] = None,
        intent: Optional[str] = None,
        limit: int = 50,
    ) -> list[TrainingCandidate]:
        stmt = select(TrainingCandidate).where(TrainingCandidate.store_id == store_id)
        if outcome is not None:
            stmt = stmt.where(TrainingCandidate.outcome == outcome)
        if intent:
            stmt = stmt.where(TrainingCandidate.detected_intent == intent)
        stmt = stmt.order_by(TrainingCandidate.created_at.desc(), TrainingCandidate.id.desc()).limit(limit)
        return list(self.session.scalars(stmt).all())

    def create(self, *, store_id: str, user_prompt: str, **fields: Any) -> TrainingCandidate:
        candidate = TrainingCandidate(store_id=store_id, user_prompt=user_prompt, **fields)
        self.session.add(candidate)
        self.session.commit()
        self.session.refresh(candidate)
        return candidate

    def record_outcome(
        self,
        candidate: TrainingCandidate,
        *,
        outcome: TrainingOutcomeEnum,
        details: Optional[dict[str, Any]] = None,
        ai_response: Optional[str] = None,
    ) -> TrainingCandidate:
        candidate.outcome = outcome
        candidate.outcome_details = details
        if ai_response is not None:
            candidate.ai_response = ai_response
        candidate.outcome_recorded_at = datetime.now(timezone.utc)
        self.session.commit()
        self.session.refresh(candidate)
        return candidate

    def update(self, candidate: TrainingCandidate, **fields: Any) -> TrainingCandidate:
        for key, value in fields.items():
            setattr(candidate, key, value)
        self.session.commit()
        self.session.refresh(candidate)
        return candidate
