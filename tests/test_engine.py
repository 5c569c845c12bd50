import json

import pytest
from sqlalchemy import select

from store_assistant.assistant.engine import AssistantEngine
from store_assistant.assistant.errors import AssistantSessionNotFoundError
from store_assistant.assistant.types import HistoryTurn
from store_assistant.db.enums import TrainingOutcomeEnum
from store_assistant.db.models import Category, ProductCategory, TrainingCandidate
from store_assistant.db.repositories.assistant_sessions import AssistantSessionsRepository
from store_assistant.db.repositories.context_documents import ContextDocumentsRepository
from store_assistant.llm.client import LLMTimeoutError


def _call(**payload) -> str:
    return json.dumps(payload)


@pytest.fixture()
def engine(db_session, fake_completer):
    return AssistantEngine(session=db_session, completer=fake_completer)


@pytest.fixture()
def turn(engine, auth_context):
    def _turn(message, **kwargs):
        return engine.handle_message(message, store_id=auth_context.store_id, user_id=auth_context.user_id, **kwargs)

    return _turn


def test_yes_without_pending_action_is_plain_chat(turn, fake_completer):
    response = turn("yes")

    assert response.message == "OK"
    assert response.results == []
    assert response.needs_confirmation is False
    assert len(fake_completer.prompts) == 1


def test_missing_category_confirmation_flow(db_session, turn, fake_completer, catalog):
    fake_completer.queue(
        _call(tool="add_to_category", product="Black T-Shirt", category="Summer Sale", confidence=0.8)
    )

    asked = turn("add the black t-shirt to summer sale")
    confirmed = turn("yes", session_id=asked.session_id)
    repeated = turn("yes", session_id=asked.session_id)

    assert asked.needs_confirmation is True
    assert asked.pending_action.tool == "create_and_add"
    assert asked.pending_action.candidateId == asked.candidate_id

    assert confirmed.results[0].tool == "create_and_add"
    assert confirmed.results[0].success is True
    assert confirmed.needs_confirmation is False
    assert confirmed.candidate_id == asked.candidate_id

    assert repeated.results == []
    assert repeated.message == "OK"

    category = db_session.scalars(select(Category).where(Category.slug == "summer-sale")).one()
    links = db_session.scalars(select(ProductCategory).where(ProductCategory.category_id == category.id)).all()
    assert len(links) == 1

    candidate = db_session.get(TrainingCandidate, asked.candidate_id)
    assert candidate.outcome == TrainingOutcomeEnum.success
    assert candidate.outcome_details["confirmed"] is True
    assert candidate.detected_intent == "category_management"
    assert candidate.ai_response == confirmed.message


def test_unrelated_turn_supersedes_pending_action(db_session, turn, fake_completer, catalog, auth_context):
    fake_completer.queue(
        _call(tool="add_to_category", product="Coffee Mug", category="Kitchen"),
        _call(tool="update_styling", element="title", property="color", value="red"),
    )

    asked = turn("put the mug in kitchen")
    styled = turn("make the title red", session_id=asked.session_id)
    after = turn("yes", session_id=asked.session_id)

    assert asked.needs_confirmation is True
    assert styled.results[0].success is True
    assert styled.refresh_preview is True
    assert after.results == []
    assert db_session.scalars(select(Category).where(Category.slug == "kitchen")).first() is None

    assistant_session = AssistantSessionsRepository(db_session).get(
        store_id=auth_context.store_id, session_id=asked.session_id
    )
    assert assistant_session.pending_action is None


def test_client_history_confirms_for_new_session(db_session, turn, fake_completer, catalog):
    fake_completer.queue(_call(tool="add_to_category", product="Coffee Mug", category="Kitchen"))
    asked = turn("put the mug in kitchen")
    history = [
        HistoryTurn(role="user", content="put the mug in kitchen"),
        HistoryTurn(
            role="assistant",
            content=asked.message,
            pending_action=asked.pending_action.model_dump(mode="json"),
        ),
    ]

    confirmed = turn("sure", history=history)

    assert confirmed.session_id != asked.session_id
    assert confirmed.results[0].tool == "create_and_add"
    assert db_session.scalars(select(Category).where(Category.slug == "kitchen")).one().name == "Kitchen"


def test_publish_is_gated_behind_confirmation(turn, fake_completer):
    fake_completer.queue(
        _call(tool="set_slot_visibility", element="sku", visible=False),
        _call(tool="publish_layout"),
    )

    hidden = turn("hide the sku")
    asked = turn("publish it", session_id=hidden.session_id)
    published = turn("go ahead", session_id=hidden.session_id)

    assert hidden.results[0].success is True
    assert asked.needs_confirmation is True
    assert published.results[0].tool == "publish_layout"
    assert published.results[0].data["versionNumber"] == 1


def test_multiple_intents_run_independently(turn, fake_completer, catalog):
    fake_completer.queue(
        json.dumps(
            [
                {"tool": "update_styling", "element": "no such thing here", "property": "color", "value": "red"},
                {"tool": "get_store_stats"},
            ]
        ),
        "NONE",
    )

    response = turn("make the sparkly widget red and show me my stats")

    assert [result.success for result in response.results] == [False, True]
    assert "3 products" in response.message


def test_classifier_timeout_propagates(turn, fake_completer):
    fake_completer.queue(LLMTimeoutError("gpt-4o-mini", 30))

    with pytest.raises(LLMTimeoutError):
        turn("make the title red")


def test_successful_calls_become_learned_examples(turn, fake_completer, catalog):
    fake_completer.queue(_call(tool="get_store_stats"))

    first = turn("how is my store doing")
    turn("thanks", session_id=first.session_id)

    assert "Examples that worked before" in fake_completer.prompts[1]
    assert "how is my store doing" in fake_completer.prompts[1]
    assert "user: how is my store doing" in fake_completer.prompts[1]


def test_unknown_session_id_is_rejected(turn):
    with pytest.raises(AssistantSessionNotFoundError):
        turn("hello", session_id="does-not-exist")


def test_tool_turn_stores_the_reply_on_its_candidate(db_session, turn, fake_completer, catalog):
    fake_completer.queue(_call(tool="get_store_stats"))

    response = turn("how many products do I have")

    candidate = db_session.get(TrainingCandidate, response.candidate_id)
    assert "3 products" in response.message
    assert candidate.ai_response == response.message
    assert candidate.outcome == TrainingOutcomeEnum.success


def test_context_documents_reach_the_classifier_prompt(db_session, turn, fake_completer):
    documents = ContextDocumentsRepository(db_session)
    documents.upsert(
        doc_type="rules", title="Publishing", content="Always confirm before publishing", category="core", priority=10
    )
    documents.upsert(doc_type="guide", title="Cart tips", content="Cart drawer notes", category="cart")
    documents.upsert(
        doc_type="guide", title="Retired", content="Old storefront notes", category="product", is_active=False
    )
    documents.upsert(
        doc_type="guide", title="Checkout", content="Checkout copy guide", category="product", mode="checkout_only"
    )

    turn("hello there", page_type="product")

    prompt = fake_completer.prompts[0]
    assert "## Publishing\nAlways confirm before publishing" in prompt
    assert "Cart drawer notes" not in prompt
    assert "Old storefront notes" not in prompt
    assert "Checkout copy guide" not in prompt
