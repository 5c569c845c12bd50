from __future__ import annotations

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import ValidationError

from store_assistant.assistant.types import HistoryTurn, PendingAction, utc_now
from store_assistant.db.models import AssistantSession
from store_assistant.db.repositories.assistant_sessions import AssistantSessionsRepository


logger = logging.getLogger(__name__)

CONFIRMATION_RE = re.compile(
    r"^(yes|yeah|yep|ok|okay|sure|do it|go ahead|proceed|create it|confirm|please|y)\.?$",
    re.IGNORECASE,
)


def is_confirmation(message: str) -> bool:
    text = (message or "").strip()
    # Allow trailing "!" as well as "." so "yes!" counts.
    text = text.rstrip("!")
    return bool(CONFIRMATION_RE.match(text))


class ConfirmationState(str, Enum):
    awaiting_input = "awaiting_input"
    has_pending_action = "has_pending_action"


def _parse_pending(raw: Optional[dict[str, Any]]) -> Optional[PendingAction]:
    if not raw:
        return None
    try:
        return PendingAction.model_validate(raw)
    except ValidationError:
        logger.warning("Discarding malformed pending action", extra={"keys": sorted(raw)})
        return None


def pending_from_history(turns: list[HistoryTurn], *, window: int) -> Optional[PendingAction]:
    """
    Pending action carried by the latest assistant turn within the last `window` turns.

    Only the latest assistant turn counts: a later reply without a pending action means the
    earlier one was superseded.
    """
    for turn in reversed(turns[-window:]):
        if turn.role != "assistant":
            continue
        return _parse_pending(turn.pending_action)
    return None


class ConfirmationStateMachine:
    def __init__(
        self,
        repo: AssistantSessionsRepository,
        *,
        history_window: int,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repo = repo
        self.history_window = history_window
        self.clock = clock

    def current(
        self, assistant_session: AssistantSession, client_history: Optional[list[HistoryTurn]] = None
    ) -> Optional[PendingAction]:
        pending = _parse_pending(assistant_session.pending_action)
        if pending is None and client_history:
            pending = pending_from_history(client_history, window=self.history_window)
        if pending is not None and pending.is_expired(self.clock()):
            logger.info(
                "Pending action expired",
                extra={"session_id": assistant_session.id, "tool": pending.kind},
            )
            if assistant_session.pending_action:
                self.clear(assistant_session)
            return None
        return pending

    def state(
        self, assistant_session: AssistantSession, client_history: Optional[list[HistoryTurn]] = None
    ) -> ConfirmationState:
        if self.current(assistant_session, client_history) is not None:
            return ConfirmationState.has_pending_action
        return ConfirmationState.awaiting_input

    def take_confirmed(
        self,
        assistant_session: AssistantSession,
        message: str,
        client_history: Optional[list[HistoryTurn]] = None,
    ) -> Optional[PendingAction]:
        """Consume and return the pending action when `message` confirms it."""
        if not is_confirmation(message):
            return None
        pending = self.current(assistant_session, client_history)
        if pending is None:
            return None
        self.clear(assistant_session)
        logger.info(
            "Replaying confirmed action",
            extra={"session_id": assistant_session.id, "tool": pending.kind},
        )
        return pending

    def remember(self, assistant_session: AssistantSession, pending: PendingAction) -> None:
        self.repo.set_pending_action(assistant_session, pending.model_dump(mode="json"))

    def clear(self, assistant_session: AssistantSession) -> None:
        if assistant_session.pending_action is not None:
            self.repo.set_pending_action(assistant_session, None)
