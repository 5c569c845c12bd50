"""
Built-in slot layouts per page type.

A stored slot document only has to contain the nodes a merchant has touched; every other node
falls back to the built-in layout below. All position math reads parents through
`SlotHierarchy` so a built-in container that is missing from the stored document still counts
as an ancestor.
"""

from __future__ import annotations

from copy import deepcopy
from typing import Any, Optional


def _node(parent_id: Optional[str], row: int, col: int) -> dict[str, Any]:
    return {"parentId": parent_id, "position": {"row": row, "col": col}, "styles": {}, "className": ""}


BUILTIN_LAYOUTS: dict[str, dict[str, dict[str, Any]]] = {
    "product": {
        "cms_block_product_above": _node(None, 1, 1),
        "main_layout": _node(None, 2, 1),
        "cms_block_product_below": _node(None, 3, 1),
        "breadcrumbs_container": _node("main_layout", 1, 1),
        "breadcrumbs": _node("breadcrumbs_container", 1, 1),
        "content_area": _node("main_layout", 2, 1),
        "product_title_mobile": _node("content_area", 1, 1),
        "product_gallery_container": _node("content_area", 2, 1),
        "info_container": _node("content_area", 3, 7),
        "product_title": _node("info_container", 1, 1),
        "cms_block_product_above_price": _node("info_container", 2, 1),
        "price_container": _node("info_container", 3, 1),
        "product_price": _node("price_container", 1, 1),
        "original_price": _node("price_container", 2, 2),
        "stock_status": _node("info_container", 4, 1),
        "product_sku": _node("info_container", 5, 1),
        "product_short_description": _node("info_container", 6, 1),
        "options_container": _node("info_container", 7, 1),
        "configurable_product_selector": _node("options_container", 1, 1),
        "custom_options": _node("options_container", 2, 1),
        "actions_container": _node("info_container", 8, 1),
        "quantity_selector": _node("actions_container", 1, 1),
        "total_price_display": _node("actions_container", 2, 1),
        "buttons_container": _node("actions_container", 3, 1),
        "add_to_cart_button": _node("buttons_container", 1, 1),
        "wishlist_button": _node("buttons_container", 2, 2),
        "product_tabs": _node("main_layout", 3, 1),
        "related_products_container": _node("main_layout", 4, 1),
        "related_products_title": _node("related_products_container", 1, 1),
        "related_products_grid": _node("related_products_container", 2, 1),
    },
    "cart": {
        "main_layout": _node(None, 1, 1),
        "header_container": _node("main_layout", 1, 1),
        "header_title": _node("header_container", 1, 1),
        "content_area": _node("main_layout", 2, 1),
        "empty_cart_container": _node("main_layout", 3, 1),
        "empty_cart_icon": _node("empty_cart_container", 1, 1),
        "empty_cart_title": _node("empty_cart_container", 2, 1),
        "empty_cart_text": _node("empty_cart_container", 3, 1),
        "empty_cart_button": _node("empty_cart_container", 4, 1),
        "cart_items": _node("content_area", 1, 1),
        "sidebar_area": _node("main_layout", 4, 9),
        "coupon_section": _node("sidebar_area", 1, 1),
        "order_summary": _node("sidebar_area", 2, 1),
    },
}


class SlotHierarchy:
    def __init__(self, page_type: str, builtin: Optional[dict[str, dict[str, Any]]] = None) -> None:
        self.page_type = page_type
        self._builtin = builtin if builtin is not None else BUILTIN_LAYOUTS.get(page_type, {})

    def parent_of(self, slot_id: str, slots: dict[str, Any]) -> Optional[str]:
        node = slots.get(slot_id)
        if node is not None:
            return node.get("parentId")
        builtin = self._builtin.get(slot_id)
        return builtin["parentId"] if builtin else None

    def ancestors(self, slot_id: str, slots: dict[str, Any]) -> list[str]:
        """Parents of `slot_id` from nearest to root. Stops on a cycle."""
        chain: list[str] = []
        seen = {slot_id}
        current = self.parent_of(slot_id, slots)
        while current is not None and current not in seen:
            chain.append(current)
            seen.add(current)
            current = self.parent_of(current, slots)
        return chain

    def known_ids(self, slots: dict[str, Any]) -> list[str]:
        ids = list(slots)
        ids.extend(slot_id for slot_id in self._builtin if slot_id not in slots)
        return ids

    def materialize(self, slots: dict[str, Any]) -> dict[str, Any]:
        """Built-in defaults overlaid with stored nodes; stored fields win."""
        merged: dict[str, Any] = {}
        for slot_id, default in self._builtin.items():
            stored = slots.get(slot_id)
            merged[slot_id] = {**deepcopy(default), **deepcopy(stored)} if stored else deepcopy(default)
        for slot_id, node in slots.items():
            if slot_id not in merged:
                merged[slot_id] = deepcopy(node)
        return merged


def get_hierarchy(page_type: str) -> SlotHierarchy:
    return SlotHierarchy(page_type)
