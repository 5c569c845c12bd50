import pytest

from store_assistant.assistant.errors import InvalidMoveError, UnresolvedReferenceError
from store_assistant.assistant.hierarchy import SlotHierarchy
from store_assistant.assistant.layout import (
    apply_style,
    children_of,
    move_slot,
    normalize_position,
    set_slot_visibility,
)


def _node(parent, row, col=1):
    return {"parentId": parent, "position": {"row": row, "col": col}}


def _rows(slots, parent):
    return [(slot_id, slots[slot_id]["position"]["row"]) for slot_id in children_of(slots, parent)]


@pytest.fixture()
def flat_slots():
    return {
        "P": _node(None, 1),
        "A": _node("P", 1),
        "B": _node("P", 2),
        "C": _node("P", 3),
    }


def test_move_before_reorders_and_renumbers(flat_slots):
    result = move_slot(flat_slots, "B", "A", "before")

    assert _rows(result, "P") == [("B", 1), ("A", 2), ("C", 3)]


def test_move_after_last_sibling(flat_slots):
    result = move_slot(flat_slots, "A", "C", "after")

    assert _rows(result, "P") == [("B", 1), ("C", 2), ("A", 3)]


def test_move_does_not_mutate_input(flat_slots):
    snapshot = {key: {"parentId": value["parentId"], "position": dict(value["position"])} for key, value in flat_slots.items()}

    move_slot(flat_slots, "C", "A", "before")

    assert flat_slots == snapshot


def test_move_back_restores_original_order(flat_slots):
    moved = move_slot(flat_slots, "C", "A", "before")
    restored = move_slot(moved, "C", "B", "after")

    assert _rows(restored, "P") == _rows(flat_slots, "P")


def test_move_never_adds_or_removes_slots(flat_slots):
    result = move_slot(flat_slots, "A", "C", "after")

    assert set(result) == set(flat_slots)


def test_move_onto_itself_is_a_noop(flat_slots):
    result = move_slot(flat_slots, "B", "B", "after")

    assert result == flat_slots
    assert result is not flat_slots


def test_move_with_unknown_slot_raises(flat_slots):
    with pytest.raises(UnresolvedReferenceError):
        move_slot(flat_slots, "missing", "A", "before")


def test_move_rejects_unknown_position(flat_slots):
    with pytest.raises(ValueError):
        move_slot(flat_slots, "A", "B", "beside")


def test_move_next_to_nested_target_uses_sibling_container():
    slots = {
        "info_container": _node(None, 1),
        "product_title": _node("info_container", 1),
        "price_container": _node("info_container", 2, col=3),
        "product_price": _node("price_container", 1),
        "product_sku": _node("info_container", 3),
    }

    result = move_slot(slots, "product_sku", "product_price", "before")

    assert result["product_sku"]["parentId"] == "info_container"
    assert result["product_sku"]["position"]["col"] == 3
    assert _rows(result, "info_container") == [("product_title", 1), ("product_sku", 2), ("price_container", 3)]
    assert result["product_price"]["parentId"] == "price_container"


def test_move_across_parents_reparents_and_renumbers_both():
    slots = {
        "left": _node(None, 1),
        "right": _node(None, 2),
        "a": _node("left", 1),
        "b": _node("left", 2, col=2),
        "c": _node("left", 3),
        "x": _node("right", 1, col=6),
        "y": _node("right", 2, col=6),
    }

    result = move_slot(slots, "b", "x", "after")

    assert result["b"]["parentId"] == "right"
    assert result["b"]["position"]["col"] == 2
    assert _rows(result, "right") == [("x", 1), ("b", 2), ("y", 3)]
    assert _rows(result, "left") == [("a", 1), ("c", 2)]


def test_move_container_next_to_its_descendant_is_rejected():
    slots = {
        "outer": _node(None, 1),
        "inner": _node("outer", 1),
        "leaf": _node("inner", 1),
    }

    with pytest.raises(InvalidMoveError):
        move_slot(slots, "outer", "leaf", "before", SlotHierarchy("custom", {}))


def test_move_uses_builtin_parents_for_missing_nodes():
    hierarchy = SlotHierarchy("product")
    slots = hierarchy.materialize({})

    result = move_slot(slots, "product_sku", "product_price", "after", hierarchy)

    assert result["product_sku"]["parentId"] == "info_container"
    ordered = children_of(result, "info_container")
    assert ordered.index("product_sku") == ordered.index("price_container") + 1


def _rows_by_parent(slots):
    grouped = {}
    for slot_id in slots:
        grouped.setdefault(slots[slot_id]["parentId"], []).append(slots[slot_id]["position"]["row"])
    return {parent: sorted(rows) for parent, rows in grouped.items()}


@pytest.mark.parametrize("page_type", ["product", "cart"])
def test_builtin_layouts_have_contiguous_rows(page_type):
    slots = SlotHierarchy(page_type).materialize({})

    for parent, rows in _rows_by_parent(slots).items():
        assert rows == list(range(1, len(rows) + 1)), parent


def test_move_leaves_every_sibling_group_contiguous():
    hierarchy = SlotHierarchy("product")
    slots = hierarchy.materialize(
        {
            "custom_banner": {"parentId": "content_area", "position": {"row": 0, "col": 1}},
            "promo_badge": {"parentId": "price_container", "position": {"row": 1, "col": 3}},
        }
    )

    result = move_slot(slots, "product_sku", "product_title", "before", hierarchy)

    for parent, rows in _rows_by_parent(result).items():
        assert rows == list(range(1, len(rows) + 1)), parent
    assert children_of(result, "content_area")[0] == "custom_banner"
    assert children_of(result, "info_container")[:2] == ["product_sku", "product_title"]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("before", "before"),
        ("Above", "before"),
        ("top", "before"),
        ("after", "after"),
        ("below", "after"),
        (" under ", "after"),
        ("beside", None),
        (None, None),
    ],
)
def test_normalize_position(raw, expected):
    assert normalize_position(raw) == expected


def test_set_slot_visibility_marks_hidden(flat_slots):
    result = set_slot_visibility(flat_slots, "A", False)

    assert result["A"]["props"]["hidden"] is True
    assert "props" not in flat_slots["A"]


def test_apply_style_keeps_existing_styles():
    slots = {"title": {"parentId": None, "styles": {"color": "#000000"}}}

    result = apply_style(slots, "title", "fontSize", "20px")

    assert result["title"]["styles"] == {"color": "#000000", "fontSize": "20px"}
