from datetime import timedelta

from sqlalchemy import select

from store_assistant.assistant.executor import ActionExecutor
from store_assistant.assistant.tools import TOOL_REGISTRY, GetStoreStatsTool
from store_assistant.assistant.types import utc_now
from store_assistant.db.models import Category, ProductCategory
from store_assistant.services import slot_configurations as slot_service


class ExplodingStatsTool(GetStoreStatsTool):
    def run(self, *, ctx, args):
        raise RuntimeError("stats backend down")


def _links(db_session, product_id):
    return db_session.scalars(select(ProductCategory).where(ProductCategory.product_id == product_id)).all()


def test_missing_category_asks_for_confirmation(tool_context, catalog):
    result = ActionExecutor().execute(
        {"tool": "add_to_category", "product": "Black T-Shirt", "category": "Summer Sale"}, tool_context()
    )

    assert result.success is True
    assert result.needsConfirmation is True
    assert result.pendingAction.tool == "create_and_add"
    assert result.pendingAction.payload == {"product": "Black T-Shirt", "category": "Summer Sale"}
    assert result.pendingAction.originalMessage == "test message"
    assert result.pendingAction.expiresAt > utc_now() + timedelta(minutes=5)


def test_confirmed_create_and_add_assigns_exactly_once(db_session, tool_context, catalog):
    executor = ActionExecutor()
    pending = executor.execute(
        {"tool": "add_to_category", "product": "TSHIRT-BLK", "category": "Summer Sale"}, tool_context()
    ).pendingAction

    first = executor.execute(pending.to_tool_call(), tool_context(confirmed=True))
    second = executor.execute(pending.to_tool_call(), tool_context(confirmed=True))

    assert first.success is True
    assert first.data["categoryCreated"] is True
    assert second.success is True
    assert second.data["categoryCreated"] is False
    assert second.data["assigned"] is False
    categories = db_session.scalars(select(Category).where(Category.slug == "summer-sale")).all()
    assert len(categories) == 1
    assert len(_links(db_session, catalog["tshirt"].id)) == 1


def test_add_to_existing_category_is_idempotent(db_session, tool_context, catalog):
    executor = ActionExecutor()
    call = {"tool": "add_to_category", "product": "mug", "category": "apparel"}

    first = executor.execute(call, tool_context())
    second = executor.execute(call, tool_context())

    assert first.message == "Added Coffee Mug to Apparel."
    assert second.message == "Coffee Mug is already in Apparel."
    assert len(_links(db_session, catalog["mug"].id)) == 1


def test_ambiguous_product_is_reported(tool_context, catalog):
    result = ActionExecutor().execute(
        {"tool": "add_to_category", "product": "t", "category": "Apparel"}, tool_context()
    )

    assert result.success is False
    assert result.data["error"] == "AmbiguousMatchError"
    assert "Which one did you mean?" in result.message


def test_unknown_product_lists_suggestions(tool_context, catalog):
    result = ActionExecutor().execute(
        {"tool": "remove_from_category", "product": "Coffee Mugg Deluxe", "category": "Apparel"}, tool_context()
    )

    assert result.success is False
    assert result.data["error"] == "UnresolvedReferenceError"
    assert "Coffee Mug" in result.data["suggestions"]


def test_extra_arguments_are_rejected(tool_context):
    result = ActionExecutor().execute(
        {"tool": "create_category", "name": "Hats", "color": "red"}, tool_context()
    )

    assert result.success is False
    assert result.data == {"error": "invalid_arguments"}


def test_unknown_tool_is_a_failure_result(tool_context):
    result = ActionExecutor().execute({"tool": "launch_rocket"}, tool_context())

    assert result.success is False
    assert result.tool == "launch_rocket"


def test_batch_keeps_going_after_a_failure(tool_context, catalog):
    registry = {**TOOL_REGISTRY, "get_store_stats": ExplodingStatsTool()}
    executor = ActionExecutor(registry)

    results = executor.execute_batch(
        [
            {"tool": "get_store_stats"},
            {"tool": "create_category", "name": "Hats"},
            {"tool": "list_products", "filters": {"in_stock": True, "sort_by": "price_asc"}},
        ],
        tool_context(),
    )

    assert [result.success for result in results] == [False, True, True]
    assert results[0].message == "Something went wrong: stats backend down"
    assert [product["name"] for product in results[2].data["products"]] == ["Coffee Mug", "Black T-Shirt"]


def test_list_products_filters(tool_context, catalog):
    executor = ActionExecutor()

    on_sale = executor.execute({"tool": "list_products", "filters": {"on_sale": True}}, tool_context())
    low_stock = executor.execute({"tool": "list_products", "filters": {"low_stock": True}}, tool_context())
    out_of_stock = executor.execute({"tool": "list_products", "filters": {"out_of_stock": True}}, tool_context())

    assert [product["sku"] for product in on_sale.data["products"]] == ["TSHIRT-BLK"]
    assert [product["sku"] for product in low_stock.data["products"]] == ["MUG-01"]
    assert [product["sku"] for product in out_of_stock.data["products"]] == ["POSTER-XL"]


def test_store_stats(tool_context, catalog):
    result = ActionExecutor().execute({"tool": "get_store_stats"}, tool_context())

    assert result.data["stats"] == {
        "products": 3,
        "inStock": 2,
        "outOfStock": 1,
        "lowStock": 1,
        "featured": 1,
        "categories": 1,
    }


def test_update_styling_writes_draft(db_session, tool_context):
    result = ActionExecutor().execute(
        {"tool": "update_styling", "element": "the price", "property": "font size", "value": "bigger"},
        tool_context(),
    )

    assert result.success is True
    assert result.refreshPreview is True
    assert result.data["slotId"] == "product_price"
    assert result.data["value"] == "20px"
    draft = slot_service.get_or_create_draft(db_session, store_id=tool_context().store_id, page_type="product")
    assert slot_service.get_slots(draft)["product_price"]["styles"] == {"fontSize": "20px"}


def test_move_element_persists_new_order(db_session, tool_context):
    result = ActionExecutor().execute(
        {"tool": "move_element", "element": "sku", "position": "above", "target": "product title"},
        tool_context(),
    )

    assert result.success is True
    assert result.data["position"] == "before"
    draft = slot_service.get_or_create_draft(db_session, store_id=tool_context().store_id, page_type="product")
    slots = slot_service.get_slots(draft)
    assert slots["product_sku"]["position"]["row"] == 1
    assert slots["product_title"]["position"]["row"] == 2


def test_unresolvable_element_changes_nothing(db_session, tool_context):
    result = ActionExecutor().execute(
        {"tool": "set_slot_visibility", "element": "qqqq zzzz", "visible": False},
        tool_context(),
    )

    assert result.success is False
    assert result.data["error"] == "UnresolvedReferenceError"
    assert len(result.data["suggestions"]) == 3


def test_publish_requires_confirmation(tool_context):
    executor = ActionExecutor()

    asked = executor.execute({"tool": "publish_layout"}, tool_context())
    executor.execute({"tool": "set_slot_visibility", "element": "sku", "visible": False}, tool_context())
    published = executor.execute(asked.pendingAction.to_tool_call(), tool_context(confirmed=True))

    assert asked.needsConfirmation is True
    assert asked.pendingAction.payload == {"page": "product"}
    assert published.success is True
    assert published.data["versionNumber"] == 1


def test_ask_confirmation_wraps_nested_call(tool_context):
    result = ActionExecutor().execute(
        {
            "tool": "ask_confirmation",
            "question": "Create the Hats category?",
            "pending_action": {"tool": "create_category", "name": "Hats"},
        },
        tool_context(),
    )

    assert result.needsConfirmation is True
    assert result.message == "Create the Hats category?"
    assert result.pendingAction.tool == "create_category"
    assert result.pendingAction.payload == {"name": "Hats"}
