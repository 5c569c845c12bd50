from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from store_assistant.assistant.types import ActionResult, ToolContext


ArgsT = TypeVar("ArgsT", bound=BaseModel)


class ToolValidationError(ValueError):
    pass


class BaseTool(Generic[ArgsT]):
    name: str
    # Tools that change what the storefront preview shows.
    refreshes_preview: bool = False

    def run(self, *, ctx: ToolContext, args: ArgsT) -> ActionResult:
        raise NotImplementedError

    def result(self, *, success: bool, message: str, data: dict[str, Any] | None = None) -> ActionResult:
        return ActionResult(
            tool=self.name,
            success=success,
            message=message,
            data=data or {},
            refreshPreview=success and self.refreshes_preview,
        )
