from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from store_assistant.assistant.training import TrainingRecorder
from store_assistant.auth.dependencies import AuthContext, get_current_user
from store_assistant.db.deps import get_session
from store_assistant.db.enums import TrainingOutcomeEnum
from store_assistant.db.models import TrainingCandidate
from store_assistant.db.repositories.training_candidates import TrainingCandidatesRepository
from store_assistant.schemas.training import FeedbackRequest

router = APIRouter(prefix="/training", tags=["training"])


def _candidate_to_dict(candidate: TrainingCandidate) -> dict:
    return {
        "id": candidate.id,
        "sessionId": candidate.session_id,
        "userPrompt": candidate.user_prompt,
        "aiResponse": candidate.ai_response,
        "detectedIntent": candidate.detected_intent,
        "detectedEntity": candidate.detected_entity,
        "detectedOperation": candidate.detected_operation,
        "actionTaken": candidate.action_taken,
        "confidenceScore": candidate.confidence_score,
        "outcome": candidate.outcome.value,
        "outcomeDetails": candidate.outcome_details,
        "wasHelpful": candidate.was_helpful,
        "feedbackText": candidate.feedback_text,
        "createdAt": candidate.created_at,
    }


@router.get("/candidates")
def list_candidates(
    outcome: TrainingOutcomeEnum | None = None,
    intent: str | None = None,
    limit: int = 50,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> list:
    repo = TrainingCandidatesRepository(session)
    candidates = repo.list(store_id=auth.store_id, outcome=outcome, intent=intent, limit=limit)
    return jsonable_encoder([_candidate_to_dict(candidate) for candidate in candidates])


@router.post("/candidates/{candidate_id}/feedback")
def record_feedback(
    candidate_id: str,
    payload: FeedbackRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> dict:
    candidate = TrainingRecorder(session).record_feedback(
        store_id=auth.store_id,
        candidate_id=candidate_id,
        was_helpful=payload.wasHelpful,
        feedback_text=payload.feedbackText,
    )
    if not candidate:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Training candidate not found")
    return jsonable_encoder(_candidate_to_dict(candidate))
