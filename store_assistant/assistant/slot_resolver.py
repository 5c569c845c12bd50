"""
Resolve the name a merchant uses for a page element ("the buy button") to a slot id.

Each stage is a plain function over the list of available slot ids; `SlotResolver` runs them in
order and stops at the first hit. Only the last stage talks to a model, through `SlotChooser`.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional, Protocol

from store_assistant.assistant.errors import UnresolvedReferenceError
from store_assistant.llm.client import LLMGenerationParams, TextCompleter


logger = logging.getLogger(__name__)

_LEADING_ARTICLES = ("the ", "a ", "an ", "my ", "our ")
_MIN_SUBSTRING_LENGTH = 3

SLOT_ALIASES: dict[str, dict[str, str]] = {
    "product": {
        "title": "product_title",
        "name": "product_title",
        "heading": "product_title",
        "product name": "product_title",
        "mobile title": "product_title_mobile",
        "price": "product_price",
        "current price": "product_price",
        "sale price": "product_price",
        "original price": "original_price",
        "old price": "original_price",
        "compare price": "original_price",
        "was price": "original_price",
        "price section": "price_container",
        "add to cart": "add_to_cart_button",
        "cart button": "add_to_cart_button",
        "buy button": "add_to_cart_button",
        "buy now": "add_to_cart_button",
        "wishlist": "wishlist_button",
        "favorite button": "wishlist_button",
        "heart": "wishlist_button",
        "sku": "product_sku",
        "stock": "stock_status",
        "availability": "stock_status",
        "inventory": "stock_status",
        "description": "product_short_description",
        "short description": "product_short_description",
        "gallery": "product_gallery_container",
        "images": "product_gallery_container",
        "image": "product_gallery_container",
        "photos": "product_gallery_container",
        "breadcrumb": "breadcrumbs",
        "tabs": "product_tabs",
        "details tabs": "product_tabs",
        "related": "related_products_container",
        "recommendations": "related_products_container",
        "related title": "related_products_title",
        "quantity": "quantity_selector",
        "qty": "quantity_selector",
        "total": "total_price_display",
        "total price": "total_price_display",
        "options": "options_container",
        "variants": "configurable_product_selector",
        "variant selector": "configurable_product_selector",
        "buttons": "buttons_container",
        "actions": "actions_container",
        "info": "info_container",
        "details": "info_container",
    },
    "cart": {
        "title": "header_title",
        "heading": "header_title",
        "items": "cart_items",
        "line items": "cart_items",
        "coupon": "coupon_section",
        "discount code": "coupon_section",
        "promo code": "coupon_section",
        "summary": "order_summary",
        "totals": "order_summary",
        "sidebar": "sidebar_area",
        "empty cart": "empty_cart_container",
        "empty cart button": "empty_cart_button",
        "continue shopping": "empty_cart_button",
    },
}


class SlotChooser(Protocol):
    def choose_slot(self, term: str, slot_ids: list[str], page_type: str) -> Optional[str]: ...


def normalize_phrase(term: str) -> str:
    text = re.sub(r"[\"'`.,!?]", "", (term or "").strip().lower())
    text = re.sub(r"[\s_-]+", " ", text).strip()
    for article in _LEADING_ARTICLES:
        if text.startswith(article):
            text = text[len(article) :]
            break
    return text


def to_slot_id(term: str) -> str:
    return normalize_phrase(term).replace(" ", "_")


def match_exact(term: str, slot_ids: list[str]) -> Optional[str]:
    if term in slot_ids:
        return term
    lowered = term.lower()
    for slot_id in slot_ids:
        if slot_id.lower() == lowered:
            return slot_id
    return None


def match_normalized(term: str, slot_ids: list[str], page_type: str) -> Optional[str]:
    candidate = to_slot_id(term)
    if not candidate:
        return None
    prefix = f"{page_type}_" if page_type else ""
    variants = [candidate]
    if prefix:
        if candidate.startswith(prefix):
            variants.append(candidate[len(prefix) :])
        else:
            variants.append(prefix + candidate)
    for variant in variants:
        found = match_exact(variant, slot_ids)
        if found:
            return found
    return None


def match_alias(term: str, slot_ids: list[str], page_type: str) -> Optional[str]:
    aliases = SLOT_ALIASES.get(page_type, {})
    phrase = normalize_phrase(term)
    for candidate in (phrase, phrase.removesuffix(" button"), phrase.removesuffix(" section")):
        slot_id = aliases.get(candidate)
        if slot_id and slot_id in slot_ids:
            return slot_id
    return None


def match_substring(term: str, slot_ids: list[str]) -> Optional[str]:
    """Prefer the shortest id containing the term, then the longest id the term contains."""
    candidate = to_slot_id(term)
    if len(candidate) < _MIN_SUBSTRING_LENGTH:
        return None
    containing = [slot_id for slot_id in slot_ids if candidate in slot_id.lower()]
    if containing:
        return min(containing, key=lambda slot_id: (len(slot_id), slot_id))
    contained = [
        slot_id for slot_id in slot_ids if len(slot_id) >= _MIN_SUBSTRING_LENGTH and slot_id.lower() in candidate
    ]
    if contained:
        return max(contained, key=lambda slot_id: (len(slot_id), slot_id))
    return None


def match_with_chooser(
    term: str, slot_ids: list[str], page_type: str, chooser: Optional[SlotChooser]
) -> Optional[str]:
    if chooser is None or not slot_ids:
        return None
    answer = chooser.choose_slot(term, slot_ids, page_type)
    if answer is None:
        return None
    answer = answer.strip().strip("`\"'")
    if answer in slot_ids:
        return answer
    logger.info("Discarded slot choice outside the available ids", extra={"term": term, "answer": answer})
    return None


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost))
        prev = cur
    return prev[-1]


def suggest_slots(term: str, slot_ids: list[str], page_type: str, limit: int = 3) -> list[str]:
    """Closest slot ids by edit distance over both the ids and the alias phrases."""
    phrase = normalize_phrase(term)
    candidate = phrase.replace(" ", "_")
    scored: dict[str, int] = {}
    for slot_id in slot_ids:
        scored[slot_id] = levenshtein(candidate, slot_id.lower())
    for alias, slot_id in SLOT_ALIASES.get(page_type, {}).items():
        if slot_id not in slot_ids:
            continue
        distance = levenshtein(phrase, alias)
        if distance < scored.get(slot_id, distance + 1):
            scored[slot_id] = distance
    ranked = sorted(scored.items(), key=lambda item: (item[1], item[0]))
    return [slot_id for slot_id, _distance in ranked[:limit]]


class CompleterSlotChooser:
    """Asks a text completer to pick one id from a closed list."""

    def __init__(self, completer: TextCompleter, *, model: Optional[str] = None) -> None:
        self.completer = completer
        self.model = model

    def choose_slot(self, term: str, slot_ids: list[str], page_type: str) -> Optional[str]:
        prompt = (
            f"A store owner is editing the {page_type} page and refers to an element as \"{term}\".\n"
            "Pick the single matching element id from this list:\n"
            + "\n".join(f"- {slot_id}" for slot_id in slot_ids)
            + "\nAnswer with the id only, or NONE if nothing matches."
        )
        params = LLMGenerationParams(model=self.model, max_tokens=32, temperature=0.0) if self.model else None
        answer = self.completer.generate_text(prompt, params).strip()
        if not answer or answer.upper() == "NONE":
            return None
        return answer.splitlines()[0]


class SlotResolver:
    def __init__(
        self,
        *,
        page_type: str,
        chooser: Optional[SlotChooser] = None,
        suggestion_limit: int = 3,
    ) -> None:
        self.page_type = page_type
        self.chooser = chooser
        self.suggestion_limit = suggestion_limit
        self._cache: dict[tuple[str, tuple[str, ...]], Optional[str]] = {}

    def _stages(self) -> list[tuple[str, Callable[[str, list[str]], Optional[str]]]]:
        return [
            ("exact", match_exact),
            ("normalized", lambda term, ids: match_normalized(term, ids, self.page_type)),
            ("alias", lambda term, ids: match_alias(term, ids, self.page_type)),
            ("substring", match_substring),
            ("chooser", lambda term, ids: match_with_chooser(term, ids, self.page_type, self.chooser)),
        ]

    def resolve(self, term: str, slot_ids: list[str]) -> Optional[str]:
        key = (term, tuple(slot_ids))
        if key in self._cache:
            return self._cache[key]
        resolved = None
        for stage_name, stage in self._stages():
            resolved = stage(term, slot_ids)
            if resolved is not None:
                logger.debug(
                    "Resolved slot reference",
                    extra={"term": term, "slot_id": resolved, "stage": stage_name, "page_type": self.page_type},
                )
                break
        self._cache[key] = resolved
        return resolved

    def resolve_or_raise(self, term: str, slot_ids: list[str]) -> str:
        resolved = self.resolve(term, slot_ids)
        if resolved is None:
            raise UnresolvedReferenceError(
                term,
                kind="element",
                suggestions=suggest_slots(term, slot_ids, self.page_type, self.suggestion_limit),
            )
        return resolved
