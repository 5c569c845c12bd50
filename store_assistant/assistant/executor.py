from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Any, Optional

from store_assistant.assistant.errors import AssistantError, ConfirmationRequired
from store_assistant.assistant.runtime import BaseTool, ToolValidationError
from store_assistant.assistant.tools import TOOL_REGISTRY, parse_tool_call
from store_assistant.assistant.types import ActionResult, PendingAction, ToolContext, utc_now
from store_assistant.config import settings
from store_assistant.llm.client import LLMTimeoutError
from store_assistant.observability import start_langfuse_span


logger = logging.getLogger(__name__)


class ActionExecutor:
    """Dispatches validated tool calls. A failing call never stops the rest of a batch."""

    def __init__(
        self,
        registry: Optional[dict[str, BaseTool]] = None,
        *,
        pending_ttl_seconds: Optional[int] = None,
    ) -> None:
        self.registry = registry if registry is not None else TOOL_REGISTRY
        self.pending_ttl_seconds = pending_ttl_seconds or settings.ASSISTANT_PENDING_ACTION_TTL_SECONDS

    def _pending_action(self, exc: ConfirmationRequired, ctx: ToolContext) -> PendingAction:
        return PendingAction(
            kind=exc.tool,
            payload=exc.args,
            originalMessage=ctx.original_message,
            question=exc.question,
            expiresAt=utc_now() + timedelta(seconds=self.pending_ttl_seconds),
        )

    def execute(self, raw_call: Any, ctx: ToolContext) -> ActionResult:
        tool_name = raw_call.get("tool") if isinstance(raw_call, dict) else None
        tool = self.registry.get(tool_name) if tool_name else None
        if tool is None:
            return ActionResult(
                tool=str(tool_name or "unknown"),
                success=False,
                message=f"I don't know how to do \"{tool_name}\" yet.",
            )

        started = time.monotonic()
        try:
            args = parse_tool_call(raw_call)
            with start_langfuse_span(
                name=f"assistant.tool.{tool.name}",
                input={"args": args.model_dump(mode="json")},
                metadata={"toolName": tool.name, "storeId": ctx.store_id, "confirmed": ctx.confirmed},
                tags=["assistant", "tool_call", tool.name],
            ) as span:
                result = tool.run(ctx=ctx, args=args)
                if span is not None:
                    span.update(output={"success": result.success, "message": result.message})
        except ConfirmationRequired as exc:
            pending = self._pending_action(exc, ctx)
            logger.info(
                "Tool requires confirmation",
                extra={"tool": tool.name, "pending_tool": pending.kind, "store_id": ctx.store_id},
            )
            return ActionResult(
                tool=tool.name,
                success=True,
                message=exc.question,
                needsConfirmation=True,
                pendingAction=pending,
            )
        except ToolValidationError as exc:
            logger.info("Rejected tool arguments", extra={"tool": tool.name, "error": str(exc)})
            return ActionResult(tool=tool.name, success=False, message=str(exc), data={"error": "invalid_arguments"})
        except AssistantError as exc:
            return ActionResult(
                tool=tool.name,
                success=False,
                message=exc.user_message(),
                data={"error": type(exc).__name__, **exc.details()},
            )
        except LLMTimeoutError as exc:
            ctx.session.rollback()
            logger.warning("Tool timed out waiting for the model", extra={"tool": tool.name})
            return ActionResult(
                tool=tool.name,
                success=False,
                message="That took too long to work out. Please try again.",
                data={"error": "timeout", "retryable": True, "detail": str(exc)},
            )
        except Exception as exc:  # noqa: BLE001
            ctx.session.rollback()
            logger.exception("Tool execution failed", extra={"tool": tool.name, "store_id": ctx.store_id})
            return ActionResult(tool=tool.name, success=False, message=f"Something went wrong: {exc}")

        logger.info(
            "Tool executed",
            extra={
                "tool": tool.name,
                "success": result.success,
                "duration_ms": int((time.monotonic() - started) * 1000),
                "store_id": ctx.store_id,
            },
        )
        return result

    def execute_batch(self, raw_calls: list[Any], ctx: ToolContext) -> list[ActionResult]:
        return [self.execute(raw_call, ctx) for raw_call in raw_calls]
