from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Literal, Optional

from store_assistant.assistant.errors import InvalidMoveError, UnresolvedReferenceError
from store_assistant.assistant.hierarchy import SlotHierarchy


logger = logging.getLogger(__name__)

Placement = Literal["before", "after"]

_AFTER_WORDS = {"after", "below", "under", "beneath", "bottom"}
_BEFORE_WORDS = {"before", "above", "over", "top", "up"}


def normalize_position(raw: Optional[str]) -> Optional[Placement]:
    """Map free-text placement words onto `before`/`after`. Returns None when unrecognized."""
    word = (raw or "").strip().lower()
    if word in _AFTER_WORDS:
        return "after"
    if word in _BEFORE_WORDS:
        return "before"
    return None


def _sort_key(slots: dict[str, Any], slot_id: str) -> tuple[float, float]:
    position = slots[slot_id].get("position") or {}
    return float(position.get("row") or 0), float(position.get("col") or 0)


def children_of(slots: dict[str, Any], parent_id: Optional[str]) -> list[str]:
    """Direct children of `parent_id` in visual order. Ties keep document order."""
    ids = [slot_id for slot_id, node in slots.items() if node.get("parentId") == parent_id]
    return sorted(ids, key=lambda slot_id: _sort_key(slots, slot_id))


def _assign_rows(slots: dict[str, Any], ordered_ids: list[str]) -> None:
    for index, slot_id in enumerate(ordered_ids, start=1):
        position = dict(slots[slot_id].get("position") or {})
        position["row"] = index
        position.setdefault("col", 1)
        slots[slot_id]["position"] = position


def renumber_siblings(slots: dict[str, Any], parent_id: Optional[str]) -> list[str]:
    ordered = children_of(slots, parent_id)
    _assign_rows(slots, ordered)
    return ordered


def renumber_all(slots: dict[str, Any]) -> None:
    """Renumber every sibling group to rows 1..n, keeping visual then document order."""
    for parent_id in dict.fromkeys(node.get("parentId") for node in slots.values()):
        renumber_siblings(slots, parent_id)


def _insert_relative(
    slots: dict[str, Any], parent_id: Optional[str], source_id: str, anchor_id: str, position: Placement
) -> None:
    ordered = [slot_id for slot_id in children_of(slots, parent_id) if slot_id != source_id]
    index = ordered.index(anchor_id)
    ordered.insert(index if position == "before" else index + 1, source_id)
    _assign_rows(slots, ordered)


def _set_col(slots: dict[str, Any], slot_id: str, col: Any) -> None:
    position = dict(slots[slot_id].get("position") or {})
    position["col"] = col if col is not None else 1
    slots[slot_id]["position"] = position


def move_slot(
    slots: dict[str, Any],
    source_id: str,
    target_id: str,
    position: Placement,
    hierarchy: Optional[SlotHierarchy] = None,
) -> dict[str, Any]:
    """
    Return a copy of `slots` with `source_id` placed directly before/after `target_id`.

    - Same parent: reorder and renumber rows 1..n; `col` is kept.
    - Target nested below a sibling of the source: the move acts on that sibling (the target's
      ancestor sharing the source's parent), and the source takes the ancestor's `col`.
    - Otherwise the source is reparented next to the target and keeps its own `col`.

    Every sibling group in the returned mapping has contiguous rows 1..n. The input mapping is
    never mutated and no slot is ever added or removed.
    """
    if position not in ("before", "after"):
        raise ValueError(f"Unsupported position {position!r}; expected 'before' or 'after'")
    for slot_id in (source_id, target_id):
        if slot_id not in slots:
            raise UnresolvedReferenceError(slot_id, kind="slot", suggestions=[])

    result = deepcopy(slots)
    if source_id != target_id:
        _place(result, source_id, target_id, position, hierarchy or SlotHierarchy("", {}))
    renumber_all(result)
    return result


def _place(
    result: dict[str, Any], source_id: str, target_id: str, position: Placement, hierarchy: SlotHierarchy
) -> None:
    target_ancestors = hierarchy.ancestors(target_id, result)
    if source_id in target_ancestors:
        raise InvalidMoveError(f"Cannot move {source_id} next to {target_id} because it contains it")

    source_parent = result[source_id].get("parentId")
    target_parent = result[target_id].get("parentId")

    if source_parent == target_parent:
        _insert_relative(result, source_parent, source_id, target_id, position)
        logger.debug(
            "Reordered slot within parent",
            extra={"source": source_id, "target": target_id, "parent": source_parent},
        )
        return

    for ancestor_id in target_ancestors:
        if ancestor_id in result and result[ancestor_id].get("parentId") == source_parent:
            _insert_relative(result, source_parent, source_id, ancestor_id, position)
            _set_col(result, source_id, (result[ancestor_id].get("position") or {}).get("col"))
            logger.debug(
                "Moved slot relative to sibling container",
                extra={"source": source_id, "target": target_id, "container": ancestor_id},
            )
            return

    result[source_id]["parentId"] = target_parent
    _insert_relative(result, target_parent, source_id, target_id, position)
    logger.debug(
        "Reparented slot",
        extra={"source": source_id, "target": target_id, "old_parent": source_parent, "new_parent": target_parent},
    )


def set_slot_visibility(slots: dict[str, Any], slot_id: str, visible: bool) -> dict[str, Any]:
    if slot_id not in slots:
        raise UnresolvedReferenceError(slot_id, kind="slot", suggestions=[])
    result = deepcopy(slots)
    props = dict(result[slot_id].get("props") or {})
    props["hidden"] = not visible
    result[slot_id]["props"] = props
    return result


def apply_style(slots: dict[str, Any], slot_id: str, prop: str, value: str) -> dict[str, Any]:
    if slot_id not in slots:
        raise UnresolvedReferenceError(slot_id, kind="slot", suggestions=[])
    result = deepcopy(slots)
    styles = dict(result[slot_id].get("styles") or {})
    styles[prop] = value
    result[slot_id]["styles"] = styles
    return result
