from datetime import datetime, timedelta, timezone

import pytest

from store_assistant.assistant.confirmation import (
    ConfirmationState,
    ConfirmationStateMachine,
    is_confirmation,
    pending_from_history,
)
from store_assistant.assistant.types import HistoryTurn, PendingAction
from store_assistant.db.repositories.assistant_sessions import AssistantSessionsRepository

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _pending(expires_in=timedelta(minutes=5), kind="create_and_add") -> PendingAction:
    return PendingAction(
        kind=kind,
        payload={"product": "Mug", "category": "Kitchen"},
        originalMessage="add the mug to kitchen",
        question="Create Kitchen?",
        expiresAt=NOW + expires_in,
    )


@pytest.mark.parametrize(
    "message",
    ["yes", "Yes.", "YEP", "ok", "okay", "sure", "do it", "go ahead", "proceed", "create it", "confirm", "please", "y", " yes! "],
)
def test_confirmation_grammar_accepts(message):
    assert is_confirmation(message)


@pytest.mark.parametrize("message", ["no", "yes but rename it", "maybe", "", "yess", "ok, and also hide the sku"])
def test_confirmation_grammar_rejects(message):
    assert not is_confirmation(message)


def test_pending_from_history_uses_latest_assistant_turn():
    pending = _pending().model_dump(mode="json")
    turns = [
        HistoryTurn(role="assistant", content="Create Kitchen?", pending_action=pending),
        HistoryTurn(role="user", content="actually make the title red"),
        HistoryTurn(role="assistant", content="Done."),
    ]

    assert pending_from_history(turns, window=10) is None
    assert pending_from_history(turns[:2], window=10).kind == "create_and_add"


def test_pending_from_history_respects_window():
    pending = _pending().model_dump(mode="json")
    turns = [HistoryTurn(role="assistant", content="Create Kitchen?", pending_action=pending)]
    turns.extend(HistoryTurn(role="user", content=f"message {index}") for index in range(3))

    assert pending_from_history(turns, window=3) is None
    assert pending_from_history(turns, window=4) is not None


def test_pending_action_exposes_tool_alias():
    dumped = _pending().model_dump(mode="json")

    assert dumped["tool"] == "create_and_add"
    assert PendingAction.model_validate(dumped).kind == "create_and_add"


@pytest.fixture()
def assistant_session(db_session, auth_context):
    return AssistantSessionsRepository(db_session).create(
        store_id=auth_context.store_id, user_id=auth_context.user_id, page_type="product"
    )


@pytest.fixture()
def machine(db_session):
    return ConfirmationStateMachine(AssistantSessionsRepository(db_session), history_window=10, clock=lambda: NOW)


def test_take_confirmed_consumes_pending_action(machine, assistant_session):
    machine.remember(assistant_session, _pending())
    assert machine.state(assistant_session) == ConfirmationState.has_pending_action

    taken = machine.take_confirmed(assistant_session, "yes")

    assert taken.kind == "create_and_add"
    assert taken.payload == {"product": "Mug", "category": "Kitchen"}
    assert assistant_session.pending_action is None
    assert machine.take_confirmed(assistant_session, "yes") is None


def test_non_confirming_message_leaves_pending_action(machine, assistant_session):
    machine.remember(assistant_session, _pending())

    assert machine.take_confirmed(assistant_session, "what does that mean?") is None
    assert assistant_session.pending_action is not None


def test_expired_pending_action_is_dropped(machine, assistant_session):
    machine.remember(assistant_session, _pending(expires_in=timedelta(seconds=-1)))

    assert machine.take_confirmed(assistant_session, "yes") is None
    assert assistant_session.pending_action is None
    assert machine.state(assistant_session) == ConfirmationState.awaiting_input


def test_client_history_is_used_when_session_has_no_pending(machine, assistant_session):
    history = [HistoryTurn(role="assistant", content="Create Kitchen?", pending_action=_pending().model_dump(mode="json"))]

    taken = machine.take_confirmed(assistant_session, "go ahead", history)

    assert taken is not None
    assert taken.originalMessage == "add the mug to kitchen"


def test_malformed_history_pending_is_ignored(machine, assistant_session):
    history = [HistoryTurn(role="assistant", content="?", pending_action={"payload": {}})]

    assert machine.take_confirmed(assistant_session, "yes", history) is None
