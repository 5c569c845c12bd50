from contextlib import contextmanager

import pytest

from store_assistant.observability import langfuse as langfuse_module


@pytest.fixture(autouse=True)
def reset_langfuse_state() -> None:
    langfuse_module._langfuse_client = None
    langfuse_module._langfuse_initialized = False
    yield
    langfuse_module._langfuse_client = None
    langfuse_module._langfuse_initialized = False


def _configure_enabled_langfuse(monkeypatch: pytest.MonkeyPatch, *, auth_check: bool = True) -> None:
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_ENABLED", True)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_REQUIRED", False)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_PUBLIC_KEY", "pk-test")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_SECRET_KEY", "sk-test")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_BASE_URL", "https://example.langfuse.test")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_ENVIRONMENT", "test")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_SAMPLE_RATE", 1.0)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_AUTH_CHECK", auth_check)


def test_initialize_langfuse_raises_when_required_but_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_ENABLED", False)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_REQUIRED", True)

    with pytest.raises(langfuse_module.LangfuseConfigError, match="LANGFUSE_REQUIRED is true"):
        langfuse_module.initialize_langfuse()


def test_disabled_langfuse_spans_are_noops(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_ENABLED", False)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_REQUIRED", False)

    with langfuse_module.start_langfuse_span(name="assistant.tool.update_styling") as span:
        assert span is None


def test_initialize_langfuse_raises_when_auth_check_returns_false(monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_enabled_langfuse(monkeypatch, auth_check=True)

    class FakeLangfuse:
        def __init__(self, **_kwargs):
            pass

        def auth_check(self) -> bool:
            return False

    monkeypatch.setattr(langfuse_module, "Langfuse", FakeLangfuse)

    with pytest.raises(langfuse_module.LangfuseConfigError, match="auth check returned false"):
        langfuse_module.initialize_langfuse()
    assert langfuse_module._langfuse_initialized is False
    assert langfuse_module._langfuse_client is None


def test_span_carries_bound_trace_context(monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_enabled_langfuse(monkeypatch, auth_check=False)
    trace_updates: list[dict] = []

    class FakeSpan:
        def update(self, **_kwargs):
            pass

    class FakeLangfuse:
        def __init__(self, **_kwargs):
            pass

        @contextmanager
        def start_as_current_span(self, **_kwargs):
            yield FakeSpan()

        def update_current_trace(self, **kwargs):
            trace_updates.append(kwargs)

    monkeypatch.setattr(langfuse_module, "Langfuse", FakeLangfuse)
    trace_context = langfuse_module.AssistantTraceContext(
        name="assistant.turn",
        session_id="session-1",
        user_id="user-1",
        metadata={"storeId": "store-1"},
        tags=["assistant"],
    )

    with langfuse_module.bind_trace_context(trace_context):
        with langfuse_module.start_langfuse_span(name="assistant.tool.move_element", tags=["tool_call"]) as span:
            assert isinstance(span, FakeSpan)

    assert trace_updates == [
        {
            "name": "assistant.turn",
            "session_id": "session-1",
            "user_id": "user-1",
            "metadata": {"storeId": "store-1"},
            "tags": ["assistant", "tool_call"],
        }
    ]
