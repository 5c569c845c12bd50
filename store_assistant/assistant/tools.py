from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from store_assistant.assistant.errors import (
    ConfirmationRequired,
    StyleNotAppliedError,
    UnresolvedReferenceError,
)
from store_assistant.assistant.layout import apply_style, move_slot, normalize_position, set_slot_visibility
from store_assistant.assistant.runtime import BaseTool, ToolValidationError
from store_assistant.assistant.styling import element_kind_for, resolve_property, resolve_style
from store_assistant.assistant.types import ActionResult, ToolContext
from store_assistant.db.repositories.catalog import CategoriesRepository
from store_assistant.services import catalog as catalog_service
from store_assistant.services import slot_configurations as slot_service


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


class UpdateStylingArgs(_ToolArgs):
    tool: Literal["update_styling"] = "update_styling"
    element: str = Field(min_length=1)
    property: str = Field(min_length=1)
    value: str
    page: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class MoveElementArgs(_ToolArgs):
    tool: Literal["move_element"] = "move_element"
    element: str = Field(min_length=1)
    position: str
    target: str = Field(min_length=1)
    page: Optional[str] = None

    @field_validator("position")
    @classmethod
    def normalize(cls, value: str) -> str:
        placement = normalize_position(value)
        if placement is None:
            raise ValueError(f"Unsupported position '{value}'")
        return placement


class SetSlotVisibilityArgs(_ToolArgs):
    tool: Literal["set_slot_visibility"] = "set_slot_visibility"
    element: str = Field(min_length=1)
    visible: bool
    page: Optional[str] = None


class ProductFilters(_ToolArgs):
    in_stock: bool = False
    out_of_stock: bool = False
    low_stock: bool = False
    featured: bool = False
    on_sale: bool = False
    category: Optional[str] = None
    price_min: Optional[float] = Field(default=None, ge=0)
    price_max: Optional[float] = Field(default=None, ge=0)
    sort_by: Literal["name", "price_asc", "price_desc", "stock", "newest"] = "name"
    limit: int = Field(default=20, ge=1, le=100)


class ListProductsArgs(_ToolArgs):
    tool: Literal["list_products"] = "list_products"
    filters: ProductFilters = Field(default_factory=ProductFilters)

    @field_validator("filters", mode="before")
    @classmethod
    def default_filters(cls, value: Any) -> Any:
        return {} if value is None else value


class AddToCategoryArgs(_ToolArgs):
    tool: Literal["add_to_category"] = "add_to_category"
    product: str = Field(min_length=1)
    category: str = Field(min_length=1)


class RemoveFromCategoryArgs(_ToolArgs):
    tool: Literal["remove_from_category"] = "remove_from_category"
    product: str = Field(min_length=1)
    category: str = Field(min_length=1)


class CreateCategoryArgs(_ToolArgs):
    tool: Literal["create_category"] = "create_category"
    name: str = Field(min_length=1)


class CreateAndAddArgs(_ToolArgs):
    tool: Literal["create_and_add"] = "create_and_add"
    product: str = Field(min_length=1)
    category: str = Field(min_length=1)


class AskConfirmationArgs(_ToolArgs):
    tool: Literal["ask_confirmation"] = "ask_confirmation"
    question: str = Field(min_length=1)
    pending_action: dict[str, Any]


class PublishLayoutArgs(_ToolArgs):
    tool: Literal["publish_layout"] = "publish_layout"
    page: Optional[str] = None


class GetStoreStatsArgs(_ToolArgs):
    tool: Literal["get_store_stats"] = "get_store_stats"


ToolCall = Annotated[
    Union[
        UpdateStylingArgs,
        MoveElementArgs,
        SetSlotVisibilityArgs,
        ListProductsArgs,
        AddToCategoryArgs,
        RemoveFromCategoryArgs,
        CreateCategoryArgs,
        CreateAndAddArgs,
        AskConfirmationArgs,
        PublishLayoutArgs,
        GetStoreStatsArgs,
    ],
    Field(discriminator="tool"),
]

_TOOL_CALL_ADAPTER: TypeAdapter[Any] = TypeAdapter(ToolCall)


def parse_tool_call(raw: Any) -> BaseModel:
    """Validate a `{"tool": <name>, ...args}` mapping against the tool's argument model."""
    try:
        return _TOOL_CALL_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        tool_name = raw.get("tool") if isinstance(raw, dict) else None
        raise ToolValidationError(f"Invalid args for tool {tool_name or '<missing>'}: {exc}") from exc


class _SlotTool:
    def _load(self, ctx: ToolContext, page: Optional[str]):
        page_type = page or ctx.page_type
        hierarchy = ctx.hierarchy_for(page_type)
        draft = slot_service.get_or_create_draft(
            ctx.session, store_id=ctx.store_id, page_type=page_type, user_id=ctx.user_id
        )
        slots = hierarchy.materialize(slot_service.get_slots(draft))
        return page_type, hierarchy, slots

    def _save(self, ctx: ToolContext, page_type: str, hierarchy, mutation):
        return slot_service.mutate_draft(
            ctx.session,
            store_id=ctx.store_id,
            page_type=page_type,
            user_id=ctx.user_id,
            mutation=lambda stored: mutation(hierarchy.materialize(stored)),
        )


class UpdateStylingTool(_SlotTool, BaseTool[UpdateStylingArgs]):
    name = "update_styling"
    refreshes_preview = True

    def run(self, *, ctx: ToolContext, args: UpdateStylingArgs) -> ActionResult:
        page_type, hierarchy, slots = self._load(ctx, args.page)
        slot_id = ctx.resolver_for(page_type).resolve_or_raise(args.element, list(slots))
        kind = element_kind_for(slot_id)
        prop = resolve_property(args.property, kind)
        current_value = (slots[slot_id].get("styles") or {}).get(prop)
        resolution = resolve_style(
            args.property,
            args.value,
            kind,
            current_value=current_value,
            completer=ctx.completer,
        )
        if resolution is None:
            raise StyleNotAppliedError(args.property, args.value)

        draft = self._save(
            ctx,
            page_type,
            hierarchy,
            lambda current: apply_style(current, slot_id, resolution.property, resolution.value),
        )
        return self.result(
            success=True,
            message=f"Updated {slot_id}: {resolution.property} is now {resolution.value}.",
            data={
                "pageType": page_type,
                "slotId": slot_id,
                "property": resolution.property,
                "value": resolution.value,
                "previousValue": current_value,
                "draftId": draft.id,
                "versionNumber": draft.version_number,
            },
        )


class MoveElementTool(_SlotTool, BaseTool[MoveElementArgs]):
    name = "move_element"
    refreshes_preview = True

    def run(self, *, ctx: ToolContext, args: MoveElementArgs) -> ActionResult:
        page_type, hierarchy, slots = self._load(ctx, args.page)
        resolver = ctx.resolver_for(page_type)
        source_id = resolver.resolve_or_raise(args.element, list(slots))
        target_id = resolver.resolve_or_raise(args.target, list(slots))
        if source_id == target_id:
            return self.result(success=True, message=f"{source_id} is already there; nothing to move.")

        draft = self._save(
            ctx,
            page_type,
            hierarchy,
            lambda current: move_slot(current, source_id, target_id, args.position, hierarchy),
        )
        moved = slot_service.get_slots(draft).get(source_id, {})
        return self.result(
            success=True,
            message=f"Moved {source_id} {args.position} {target_id}.",
            data={
                "pageType": page_type,
                "slotId": source_id,
                "targetId": target_id,
                "position": args.position,
                "parentId": moved.get("parentId"),
                "draftId": draft.id,
                "versionNumber": draft.version_number,
            },
        )


class SetSlotVisibilityTool(_SlotTool, BaseTool[SetSlotVisibilityArgs]):
    name = "set_slot_visibility"
    refreshes_preview = True

    def run(self, *, ctx: ToolContext, args: SetSlotVisibilityArgs) -> ActionResult:
        page_type, hierarchy, slots = self._load(ctx, args.page)
        slot_id = ctx.resolver_for(page_type).resolve_or_raise(args.element, list(slots))
        draft = self._save(
            ctx, page_type, hierarchy, lambda current: set_slot_visibility(current, slot_id, args.visible)
        )
        verb = "Showing" if args.visible else "Hiding"
        return self.result(
            success=True,
            message=f"{verb} {slot_id} on the {page_type} page.",
            data={"pageType": page_type, "slotId": slot_id, "visible": args.visible, "draftId": draft.id},
        )


class PublishLayoutTool(BaseTool[PublishLayoutArgs]):
    name = "publish_layout"
    refreshes_preview = True

    def run(self, *, ctx: ToolContext, args: PublishLayoutArgs) -> ActionResult:
        page_type = args.page or ctx.page_type
        if not ctx.confirmed:
            raise ConfirmationRequired(
                f"Publish the current {page_type} page draft to your live store?",
                tool=self.name,
                args={"page": page_type},
            )
        published = slot_service.publish_draft(
            ctx.session, store_id=ctx.store_id, page_type=page_type, user_id=ctx.user_id
        )
        return self.result(
            success=True,
            message=f"Published version {published.version_number} of the {page_type} page.",
            data={"pageType": page_type, "configurationId": published.id, "versionNumber": published.version_number},
        )


class ListProductsTool(BaseTool[ListProductsArgs]):
    name = "list_products"

    def run(self, *, ctx: ToolContext, args: ListProductsArgs) -> ActionResult:
        filters = args.filters.model_dump()
        products = catalog_service.list_products(ctx.session, store_id=ctx.store_id, filters=filters)
        if not products:
            return self.result(success=True, message="No products match those filters.", data={"products": []})
        names = ", ".join(product["name"] for product in products[:10])
        more = f" and {len(products) - 10} more" if len(products) > 10 else ""
        return self.result(
            success=True,
            message=f"Found {len(products)} product(s): {names}{more}.",
            data={"products": products, "filters": filters},
        )


class AddToCategoryTool(BaseTool[AddToCategoryArgs]):
    name = "add_to_category"

    def run(self, *, ctx: ToolContext, args: AddToCategoryArgs) -> ActionResult:
        product = catalog_service.find_product(ctx.session, store_id=ctx.store_id, term=args.product)
        category = catalog_service.find_category(ctx.session, store_id=ctx.store_id, term=args.category)
        if category is None:
            raise ConfirmationRequired(
                f"The category \"{args.category}\" doesn't exist yet. Create it and add \"{product.name}\" to it?",
                tool="create_and_add",
                args={"product": args.product, "category": args.category},
            )
        added = catalog_service.add_product_to_category(ctx.session, product=product, category=category)
        data = {"product": catalog_service.product_to_dict(product), "category": catalog_service.category_to_dict(category)}
        if not added:
            return self.result(success=True, message=f"{product.name} is already in {category.name}.", data=data)
        return self.result(success=True, message=f"Added {product.name} to {category.name}.", data=data)


class RemoveFromCategoryTool(BaseTool[RemoveFromCategoryArgs]):
    name = "remove_from_category"

    def run(self, *, ctx: ToolContext, args: RemoveFromCategoryArgs) -> ActionResult:
        product = catalog_service.find_product(ctx.session, store_id=ctx.store_id, term=args.product)
        category = catalog_service.find_category(ctx.session, store_id=ctx.store_id, term=args.category)
        if category is None:
            names = [item.name for item in CategoriesRepository(ctx.session).list(store_id=ctx.store_id)]
            raise UnresolvedReferenceError(args.category, kind="category", suggestions=names[:3])
        removed = catalog_service.remove_product_from_category(ctx.session, product=product, category=category)
        data = {"product": catalog_service.product_to_dict(product), "category": catalog_service.category_to_dict(category)}
        if not removed:
            return self.result(success=True, message=f"{product.name} wasn't in {category.name}.", data=data)
        return self.result(success=True, message=f"Removed {product.name} from {category.name}.", data=data)


class CreateCategoryTool(BaseTool[CreateCategoryArgs]):
    name = "create_category"

    def run(self, *, ctx: ToolContext, args: CreateCategoryArgs) -> ActionResult:
        category, created = catalog_service.create_category(ctx.session, store_id=ctx.store_id, name=args.name)
        data = {"category": catalog_service.category_to_dict(category), "created": created}
        if not created:
            return self.result(success=True, message=f"The category {category.name} already exists.", data=data)
        return self.result(success=True, message=f"Created the category {category.name}.", data=data)


class CreateAndAddTool(BaseTool[CreateAndAddArgs]):
    name = "create_and_add"

    def run(self, *, ctx: ToolContext, args: CreateAndAddArgs) -> ActionResult:
        product = catalog_service.find_product(ctx.session, store_id=ctx.store_id, term=args.product)
        category = catalog_service.find_category(ctx.session, store_id=ctx.store_id, term=args.category)
        created = False
        if category is None:
            category, created = catalog_service.create_category(ctx.session, store_id=ctx.store_id, name=args.category)
        added = catalog_service.add_product_to_category(ctx.session, product=product, category=category)
        data = {
            "product": catalog_service.product_to_dict(product),
            "category": catalog_service.category_to_dict(category),
            "categoryCreated": created,
            "assigned": added,
        }
        if created:
            message = f"Created the category {category.name} and added {product.name} to it."
        elif added:
            message = f"Added {product.name} to {category.name}."
        else:
            message = f"{product.name} is already in {category.name}."
        return self.result(success=True, message=message, data=data)


class AskConfirmationTool(BaseTool[AskConfirmationArgs]):
    name = "ask_confirmation"

    def run(self, *, ctx: ToolContext, args: AskConfirmationArgs) -> ActionResult:
        pending = parse_tool_call(args.pending_action)
        if pending.tool == self.name:
            raise ToolValidationError("ask_confirmation cannot wrap another confirmation")
        payload = pending.model_dump(exclude={"tool"}, exclude_none=True)
        raise ConfirmationRequired(args.question, tool=pending.tool, args=payload)


class GetStoreStatsTool(BaseTool[GetStoreStatsArgs]):
    name = "get_store_stats"

    def run(self, *, ctx: ToolContext, args: GetStoreStatsArgs) -> ActionResult:
        stats = catalog_service.store_stats(ctx.session, store_id=ctx.store_id)
        return self.result(
            success=True,
            message=(
                f"You have {stats['products']} products ({stats['inStock']} in stock, "
                f"{stats['lowStock']} running low) across {stats['categories']} categories."
            ),
            data={"stats": stats},
        )


TOOL_REGISTRY: dict[str, BaseTool] = {
    tool.name: tool
    for tool in (
        UpdateStylingTool(),
        MoveElementTool(),
        SetSlotVisibilityTool(),
        PublishLayoutTool(),
        ListProductsTool(),
        AddToCategoryTool(),
        RemoveFromCategoryTool(),
        CreateCategoryTool(),
        CreateAndAddTool(),
        AskConfirmationTool(),
        GetStoreStatsTool(),
    )
}
