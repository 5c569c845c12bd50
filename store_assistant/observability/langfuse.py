from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from langfuse import Langfuse
from openai import OpenAI as OpenAIClient

from store_assistant.config import settings


logger = logging.getLogger(__name__)


class LangfuseConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class AssistantTraceContext:
    """Identity of one assistant turn, copied onto every trace opened while it is bound."""

    name: str
    session_id: str | None = None
    user_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)

    def trace_attributes(self, *, metadata: dict[str, Any] | None, tags: list[str] | None) -> dict[str, Any]:
        merged_tags = list(dict.fromkeys([*self.tags, *(tags or [])]))
        return {
            "name": self.name,
            "session_id": self.session_id,
            "user_id": self.user_id,
            "metadata": {**self.metadata, **(metadata or {})} or None,
            "tags": merged_tags or None,
        }


_langfuse_client: Langfuse | None = None
_langfuse_initialized = False
_current_trace_context: ContextVar[AssistantTraceContext | None] = ContextVar(
    "assistant_trace_context",
    default=None,
)


def langfuse_enabled() -> bool:
    return bool(settings.LANGFUSE_ENABLED)


def _client_kwargs() -> dict[str, Any]:
    if not settings.LANGFUSE_PUBLIC_KEY or not settings.LANGFUSE_SECRET_KEY:
        raise LangfuseConfigError(
            "LANGFUSE_ENABLED is true but LANGFUSE_PUBLIC_KEY and LANGFUSE_SECRET_KEY are not both configured."
        )
    kwargs: dict[str, Any] = {
        "public_key": settings.LANGFUSE_PUBLIC_KEY,
        "secret_key": settings.LANGFUSE_SECRET_KEY,
        "tracing_enabled": True,
        "environment": settings.LANGFUSE_ENVIRONMENT or settings.ENVIRONMENT,
        "release": settings.LANGFUSE_RELEASE,
        "sample_rate": float(settings.LANGFUSE_SAMPLE_RATE),
        "timeout": int(settings.LANGFUSE_TIMEOUT_SECONDS),
        "debug": bool(settings.LANGFUSE_DEBUG),
    }
    if settings.LANGFUSE_BASE_URL:
        kwargs["base_url"] = settings.LANGFUSE_BASE_URL
    else:
        kwargs["host"] = settings.LANGFUSE_HOST
    return kwargs


def _verify_credentials(client: Langfuse) -> None:
    try:
        ok = bool(client.auth_check())
    except Exception as exc:  # noqa: BLE001
        raise LangfuseConfigError("Langfuse auth check failed; verify the host and project API keys.") from exc
    if not ok:
        raise LangfuseConfigError("Langfuse auth check returned false; verify the project API keys and host.")


def initialize_langfuse() -> None:
    """Create the process-wide client once. Tracing stays off unless LANGFUSE_ENABLED is set."""
    global _langfuse_client
    global _langfuse_initialized

    if _langfuse_initialized:
        return

    if not langfuse_enabled():
        if settings.LANGFUSE_REQUIRED:
            raise LangfuseConfigError(
                "LANGFUSE_REQUIRED is true but LANGFUSE_ENABLED is false; assistant turns would go untraced."
            )
        _langfuse_initialized = True
        logger.info("Assistant tracing disabled")
        return

    kwargs = _client_kwargs()
    client = Langfuse(**kwargs)
    if settings.LANGFUSE_AUTH_CHECK:
        _verify_credentials(client)

    _langfuse_client = client
    _langfuse_initialized = True
    logger.info(
        "Assistant tracing enabled",
        extra={"environment": kwargs["environment"], "sample_rate": kwargs["sample_rate"]},
    )


def get_langfuse_client() -> Langfuse | None:
    initialize_langfuse()
    if not langfuse_enabled():
        return None
    if _langfuse_client is None:
        raise LangfuseConfigError("Langfuse client is not initialized.")
    return _langfuse_client


def shutdown_langfuse() -> None:
    client = get_langfuse_client()
    if client is not None:
        client.shutdown()


def get_openai_client_class() -> type[OpenAIClient]:
    # The Langfuse drop-in records OpenAI calls under the active trace.
    if langfuse_enabled():
        initialize_langfuse()
        from langfuse.openai import OpenAI as LangfuseOpenAI

        return LangfuseOpenAI
    return OpenAIClient


@contextmanager
def bind_trace_context(trace_context: AssistantTraceContext | None) -> Iterator[None]:
    token = _current_trace_context.set(trace_context)
    try:
        yield
    finally:
        _current_trace_context.reset(token)


@contextmanager
def _observe(
    start: Callable[[Langfuse], Any],
    *,
    name: str,
    metadata: dict[str, Any] | None,
    tags: list[str] | None,
) -> Iterator[Any | None]:
    client = get_langfuse_client()
    if client is None:
        yield None
        return

    with start(client) as observation:
        trace_context = _current_trace_context.get() or AssistantTraceContext(name=name)
        client.update_current_trace(**trace_context.trace_attributes(metadata=metadata, tags=tags))
        try:
            yield observation
        except Exception as exc:  # noqa: BLE001
            observation.update(level="ERROR", status_message=str(exc))
            raise


def start_langfuse_span(
    *,
    name: str,
    input: Any | None = None,
    metadata: dict[str, Any] | None = None,
    tags: list[str] | None = None,
):
    return _observe(
        lambda client: client.start_as_current_span(name=name, input=input, metadata=metadata),
        name=name,
        metadata=metadata,
        tags=tags,
    )


def start_langfuse_generation(
    *,
    name: str,
    model: str,
    input: Any | None = None,
    metadata: dict[str, Any] | None = None,
    model_parameters: dict[str, Any] | None = None,
    tags: list[str] | None = None,
):
    return _observe(
        lambda client: client.start_as_current_generation(
            name=name,
            input=input,
            model=model,
            metadata=metadata,
            model_parameters=model_parameters,
        ),
        name=name,
        metadata=metadata,
        tags=tags,
    )
