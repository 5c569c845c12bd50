import pytest

from store_assistant.assistant.classifier import (
    IntentClassifier,
    build_prompt,
    parse_classifier_output,
)
from store_assistant.assistant.errors import ClassifierParseError
from store_assistant.assistant.types import ClassifierContext, HistoryTurn
from store_assistant.llm.client import LLMTimeoutError


@pytest.fixture()
def context():
    return ClassifierContext(
        page_type="product",
        available_slots=["product_title", "add_to_cart_button"],
        learned_examples=[{"prompt": "make the title red", "action": [{"tool": "update_styling"}]}],
        conversation_history=[HistoryTurn(role="user", content="hi"), HistoryTurn(role="assistant", content="hello")],
    )


def test_single_tool_call_is_parsed():
    intents = parse_classifier_output(
        '{"tool": "update_styling", "element": "title", "property": "color", "value": "red", "confidence": 0.9}'
    )

    assert len(intents) == 1
    intent = intents[0]
    assert intent.intent == "styling"
    assert intent.tool == "update_styling"
    assert intent.args == {"element": "title", "property": "color", "value": "red"}
    assert intent.confidence == 0.9
    assert intent.to_tool_call() == {"tool": "update_styling", "element": "title", "property": "color", "value": "red"}


def test_array_output_is_capped():
    text = "[" + ",".join('{"tool": "get_store_stats"}' for _ in range(8)) + "]"

    assert len(parse_classifier_output(text, max_intents=3)) == 3


def test_nested_args_object_is_flattened():
    intents = parse_classifier_output('{"tool": "add_to_category", "args": {"product": "Mug", "category": "Kitchen"}}')

    assert intents[0].args == {"product": "Mug", "category": "Kitchen"}
    assert intents[0].intent == "category_management"


def test_unknown_intent_name_becomes_chat():
    intents = parse_classifier_output('{"intent": "weather", "message": "It is sunny."}')

    assert intents[0].intent == "chat"
    assert intents[0].tool is None
    assert intents[0].message == "It is sunny."


@pytest.mark.parametrize("text", ["not json", "[]", '["just a string"]', '{"tool": 5}'])
def test_malformed_output_raises_parse_error(text):
    with pytest.raises(ClassifierParseError):
        parse_classifier_output(text)


def test_classifier_degrades_to_chat_on_bad_output(fake_completer, context):
    fake_completer.queue("I think you want the title to be red.")

    intents = IntentClassifier(fake_completer).classify("make it pop", context)

    assert len(intents) == 1
    assert intents[0].intent == "chat"
    assert intents[0].tool is None
    assert intents[0].message == "I think you want the title to be red."


def test_classifier_lets_timeouts_propagate(fake_completer, context):
    fake_completer.queue(LLMTimeoutError("gpt-4o-mini", 30))

    with pytest.raises(LLMTimeoutError):
        IntentClassifier(fake_completer).classify("make the title red", context)


def test_prompt_includes_context(context):
    prompt = build_prompt("move the price above the title", context)

    assert "product page" in prompt
    assert "add_to_cart_button" in prompt
    assert "make the title red" in prompt
    assert "assistant: hello" in prompt
    assert prompt.endswith("User: move the price above the title")
