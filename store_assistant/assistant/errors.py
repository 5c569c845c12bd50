from __future__ import annotations

from typing import Any, Optional


class AssistantError(Exception):
    """Base for failures the assistant reports back to the user instead of raising to HTTP."""

    def user_message(self) -> str:
        return str(self)

    def details(self) -> dict[str, Any]:
        return {}


class UnresolvedReferenceError(AssistantError):
    def __init__(self, term: str, *, kind: str = "element", suggestions: Optional[list[str]] = None) -> None:
        self.term = term
        self.kind = kind
        self.suggestions = list(suggestions or [])
        super().__init__(f"Could not find {kind} '{term}'")

    def user_message(self) -> str:
        if self.suggestions:
            return f"I couldn't find the {self.kind} \"{self.term}\". Did you mean: {', '.join(self.suggestions)}?"
        return f"I couldn't find the {self.kind} \"{self.term}\"."

    def details(self) -> dict[str, Any]:
        return {"term": self.term, "kind": self.kind, "suggestions": self.suggestions}


class AmbiguousMatchError(AssistantError):
    def __init__(self, term: str, *, kind: str, candidates: list[str]) -> None:
        self.term = term
        self.kind = kind
        self.candidates = list(candidates)
        super().__init__(f"'{term}' matches several {kind}s")

    def user_message(self) -> str:
        listed = ", ".join(self.candidates[:5])
        return f"\"{self.term}\" matches more than one {self.kind}: {listed}. Which one did you mean?"

    def details(self) -> dict[str, Any]:
        return {"term": self.term, "kind": self.kind, "candidates": self.candidates}


class InvalidMoveError(AssistantError):
    pass


class ClassifierParseError(AssistantError):
    def __init__(self, message: str, *, raw_text: str = "") -> None:
        self.raw_text = raw_text
        super().__init__(message)


class ConfirmationRequired(AssistantError):
    """Raised by a tool that must not run before the user explicitly agrees."""

    def __init__(self, question: str, *, tool: str, args: dict[str, Any]) -> None:
        self.question = question
        self.tool = tool
        self.args = dict(args)
        super().__init__(question)

    def user_message(self) -> str:
        return self.question


class PersistenceConflictError(AssistantError):
    def __init__(self, message: str = "The layout was changed by someone else. Please try again.") -> None:
        super().__init__(message)


class StyleNotAppliedError(AssistantError):
    def __init__(self, prop: str, value: str) -> None:
        self.prop = prop
        self.value = value
        super().__init__(f"Could not apply {prop}: {value}")

    def user_message(self) -> str:
        return f"I couldn't work out how to apply \"{self.prop}: {self.value}\", so nothing was changed."


class AssistantSessionNotFoundError(LookupError):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Assistant session {session_id} not found")
