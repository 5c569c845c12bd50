from .langfuse import (
    AssistantTraceContext,
    LangfuseConfigError,
    bind_trace_context,
    get_openai_client_class,
    initialize_langfuse,
    shutdown_langfuse,
    start_langfuse_generation,
    start_langfuse_span,
)

__all__ = [
    "AssistantTraceContext",
    "LangfuseConfigError",
    "bind_trace_context",
    "get_openai_client_class",
    "initialize_langfuse",
    "shutdown_langfuse",
    "start_langfuse_generation",
    "start_langfuse_span",
]
