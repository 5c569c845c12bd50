from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from store_assistant.assistant.types import ActionResult, Intent
from store_assistant.db.enums import TrainingOutcomeEnum
from store_assistant.db.models import TrainingCandidate
from store_assistant.db.repositories.training_candidates import TrainingCandidatesRepository


logger = logging.getLogger(__name__)


def outcome_for(results: list[ActionResult]) -> tuple[TrainingOutcomeEnum, dict[str, Any]]:
    if any(result.needsConfirmation for result in results):
        return TrainingOutcomeEnum.pending, {"awaiting": "confirmation"}
    failed = [result.tool for result in results if not result.success]
    if failed:
        return TrainingOutcomeEnum.failure, {"failedTools": failed}
    return TrainingOutcomeEnum.success, {"tools": [result.tool for result in results]}


class TrainingRecorder:
    """Append-only log of how messages were interpreted and whether the action worked."""

    def __init__(self, session: Session) -> None:
        self.repo = TrainingCandidatesRepository(session)

    def capture(
        self,
        *,
        store_id: str,
        user_prompt: str,
        intents: list[Intent],
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> TrainingCandidate:
        primary = intents[0] if intents else Intent()
        actions = [intent.to_tool_call() for intent in intents if intent.tool]
        return self.repo.create(
            store_id=store_id,
            session_id=session_id,
            user_id=user_id,
            user_prompt=user_prompt,
            ai_response=primary.message,
            detected_intent=primary.intent,
            detected_entity=primary.entity or (primary.args.get("element") or primary.args.get("product")),
            detected_operation=primary.operation or primary.tool,
            action_taken={"calls": actions} if actions else None,
            confidence_score=primary.confidence,
            outcome=TrainingOutcomeEnum.pending,
        )

    def record_results(
        self, candidate: TrainingCandidate, results: list[ActionResult], *, reply: Optional[str] = None
    ) -> TrainingCandidate:
        outcome, details = outcome_for(results)
        return self.repo.record_outcome(candidate, outcome=outcome, details=details, ai_response=reply)

    def record_chat(self, candidate: TrainingCandidate, *, reply: Optional[str] = None) -> TrainingCandidate:
        return self.repo.record_outcome(
            candidate, outcome=TrainingOutcomeEnum.success, details={"chat": True}, ai_response=reply
        )

    def resolve_confirmation(
        self,
        *,
        store_id: str,
        candidate_id: Optional[str],
        results: list[ActionResult],
        reply: Optional[str] = None,
    ) -> Optional[TrainingCandidate]:
        if not candidate_id:
            return None
        candidate = self.repo.get(store_id=store_id, candidate_id=candidate_id)
        if candidate is None:
            return None
        outcome, details = outcome_for(results)
        return self.repo.record_outcome(
            candidate, outcome=outcome, details={**details, "confirmed": True}, ai_response=reply
        )

    def record_feedback(
        self, *, store_id: str, candidate_id: str, was_helpful: bool, feedback_text: Optional[str] = None
    ) -> Optional[TrainingCandidate]:
        candidate = self.repo.get(store_id=store_id, candidate_id=candidate_id)
        if candidate is None:
            return None
        fields: dict[str, Any] = {"was_helpful": was_helpful, "feedback_text": feedback_text}
        if not was_helpful and candidate.outcome == TrainingOutcomeEnum.success:
            fields["outcome"] = TrainingOutcomeEnum.failure
            fields["outcome_details"] = {**(candidate.outcome_details or {}), "reason": "user_feedback"}
        logger.info(
            "Recorded assistant feedback",
            extra={"candidate_id": candidate_id, "was_helpful": was_helpful},
        )
        return self.repo.update(candidate, **fields)

    def learned_examples(self, *, store_id: str, limit: int) -> list[dict[str, Any]]:
        """Recent prompts whose tool calls succeeded, used as few-shot examples."""
        examples = []
        for candidate in self.repo.list(store_id=store_id, outcome=TrainingOutcomeEnum.success, limit=limit * 3):
            calls = (candidate.action_taken or {}).get("calls")
            if not calls:
                continue
            examples.append({"prompt": candidate.user_prompt, "intent": candidate.detected_intent, "action": calls})
            if len(examples) >= limit:
                break
        return examples
