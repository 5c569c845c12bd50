from __future__ import annotations

import json
import logging
from typing import Any, Optional

from store_assistant.assistant.errors import ClassifierParseError
from store_assistant.assistant.json_extract import extract_first_json_value
from store_assistant.assistant.types import ClassifierContext, Intent
from store_assistant.config import settings
from store_assistant.llm.client import LLMGenerationParams, TextCompleter


logger = logging.getLogger(__name__)

INTENTS: dict[str, str] = {
    "styling": "change colors, fonts, sizes or spacing of a page element",
    "layout_modify": "move an element before/after another element",
    "visibility": "show or hide a page element",
    "publish": "publish the draft layout to the live store",
    "product_query": "list or filter products",
    "category_management": "create categories, add or remove products from categories",
    "product_management": "create or edit products",
    "attribute_management": "manage product attributes",
    "customer_management": "look up or manage customers",
    "cms_management": "edit CMS pages and blocks",
    "settings_update": "change store settings",
    "analytics_query": "questions about store numbers",
    "job_trigger": "run imports, exports or background jobs",
    "translation": "translate store content",
    "plugin": "install or configure plugins",
    "chat": "anything else; answer conversationally",
}

TOOL_INTENTS: dict[str, str] = {
    "update_styling": "styling",
    "move_element": "layout_modify",
    "set_slot_visibility": "visibility",
    "publish_layout": "publish",
    "list_products": "product_query",
    "add_to_category": "category_management",
    "remove_from_category": "category_management",
    "create_category": "category_management",
    "create_and_add": "category_management",
    "ask_confirmation": "category_management",
    "get_store_stats": "analytics_query",
}

TOOL_SIGNATURES = """\
update_styling(element, property, value, page?)
move_element(element, position: before|after|above|below, target, page?)
set_slot_visibility(element, visible: bool, page?)
publish_layout(page?)
list_products(filters?: {in_stock, out_of_stock, low_stock, featured, on_sale, category, price_min, price_max, sort_by: name|price_asc|price_desc|stock|newest, limit})
add_to_category(product, category)
remove_from_category(product, category)
create_category(name)
ask_confirmation(question, pending_action: {tool, ...args})
get_store_stats()"""

_META_KEYS = {"tool", "intent", "confidence", "message", "entity", "operation", "args"}


def _clamp_confidence(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.5
    return max(0.0, min(1.0, number))


def _intent_from_item(item: Any) -> Intent:
    if not isinstance(item, dict):
        raise ClassifierParseError(f"Expected an object per intent, got {type(item).__name__}")
    tool = item.get("tool")
    if tool is not None and not isinstance(tool, str):
        raise ClassifierParseError("Tool name must be a string")
    args = item.get("args") if isinstance(item.get("args"), dict) else {}
    args = {**args, **{key: value for key, value in item.items() if key not in _META_KEYS}}
    intent_name = item.get("intent") or (TOOL_INTENTS.get(tool) if tool else None) or "chat"
    if intent_name not in INTENTS:
        intent_name = "chat"
    message = item.get("message")
    return Intent(
        intent=intent_name,
        tool=tool or None,
        args=args if tool else {},
        message=message if isinstance(message, str) else None,
        confidence=_clamp_confidence(item.get("confidence", 0.5)),
        entity=item.get("entity") if isinstance(item.get("entity"), str) else None,
        operation=item.get("operation") if isinstance(item.get("operation"), str) else None,
    )


def parse_classifier_output(text: str, *, max_intents: int = 5) -> list[Intent]:
    """Parse a completion holding one tool call object or an array of them."""
    try:
        parsed = extract_first_json_value(text)
    except ValueError as exc:
        raise ClassifierParseError(f"Classifier output was not JSON: {exc}", raw_text=text) from exc
    items = parsed if isinstance(parsed, list) else [parsed]
    if not items:
        raise ClassifierParseError("Classifier returned an empty list", raw_text=text)
    return [_intent_from_item(item) for item in items[:max_intents]]


def chat_fallback(text: str = "") -> Intent:
    reply = text.strip() if text and not text.lstrip().startswith(("{", "[", "```")) else None
    return Intent(intent="chat", message=reply, confidence=0.0)


def build_prompt(message: str, context: ClassifierContext) -> str:
    sections = [
        "You turn store owners' requests into tool calls for an e-commerce admin.",
        f"The user is looking at the {context.page_type} page.",
        "Intents:\n" + "\n".join(f"- {name}: {description}" for name, description in INTENTS.items()),
        "Tools:\n" + TOOL_SIGNATURES,
    ]
    if context.available_slots:
        sections.append("Page elements: " + ", ".join(context.available_slots))
    if context.rag_docs:
        sections.append("Reference notes:\n" + "\n---\n".join(context.rag_docs))
    if context.learned_examples:
        examples = "\n".join(
            f"User: {example.get('prompt')}\nJSON: {json.dumps(example.get('action'), default=str)}"
            for example in context.learned_examples
        )
        sections.append("Examples that worked before:\n" + examples)
    if context.conversation_history:
        history = "\n".join(f"{turn.role}: {turn.content}" for turn in context.conversation_history)
        sections.append("Conversation so far:\n" + history)
    sections.append(
        "Reply with JSON only. One request: {\"tool\": <name>, ...args, \"intent\": <intent>, "
        "\"confidence\": 0..1}. Several requests: an array of those objects. "
        "No tool applies: {\"intent\": <intent>, \"message\": <your reply>}."
    )
    sections.append(f"User: {message}")
    return "\n\n".join(sections)


class IntentClassifier:
    def __init__(self, completer: TextCompleter, *, model: Optional[str] = None) -> None:
        self.completer = completer
        self.model = model

    def classify(self, message: str, context: ClassifierContext) -> list[Intent]:
        """
        One completion per message. Output that cannot be parsed degrades to a single chat
        intent; provider timeouts propagate so the caller can report a retryable failure.
        """
        params = LLMGenerationParams(
            model=self.model or settings.LLM_DEFAULT_MODEL,
            max_tokens=settings.LLM_CLASSIFIER_MAX_TOKENS,
            temperature=0.0,
        )
        text = self.completer.generate_text(build_prompt(message, context), params)
        try:
            intents = parse_classifier_output(text, max_intents=settings.ASSISTANT_MAX_INTENTS_PER_MESSAGE)
        except ClassifierParseError as exc:
            logger.warning(
                "Classifier output could not be parsed; replying as chat",
                extra={"error": str(exc), "output_preview": text[:200]},
            )
            return [chat_fallback(text)]
        logger.debug(
            "Classified message",
            extra={"intents": [intent.intent for intent in intents], "tools": [intent.tool for intent in intents]},
        )
        return intents
