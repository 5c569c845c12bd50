from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import anthropic
import openai
from anthropic import Anthropic
from openai import OpenAI

from store_assistant.config import settings
from store_assistant.observability import get_openai_client_class, start_langfuse_generation


logger = logging.getLogger(__name__)


class LLMClientConfigError(Exception):
    pass


class LLMTimeoutError(RuntimeError):
    """The provider did not answer within the configured deadline. Safe to retry."""

    retryable = True

    def __init__(self, model: str, timeout_seconds: float) -> None:
        super().__init__(f"LLM request timed out after {timeout_seconds:g}s (model={model})")
        self.model = model
        self.timeout_seconds = timeout_seconds


@dataclass
class LLMGenerationParams:
    model: str
    max_tokens: Optional[int] = None
    temperature: float = 0.2
    timeout_seconds: Optional[float] = None


class TextCompleter(Protocol):
    def generate_text(self, prompt: str, params: Optional[LLMGenerationParams] = None) -> str: ...


class LLMClient:
    """
    Lightweight wrapper for text completion calls made by the assistant.
    Routes to the appropriate provider client based on the requested model.
    """

    def __init__(self, default_model: Optional[str] = None) -> None:
        self.default_model = default_model or settings.LLM_DEFAULT_MODEL
        self._anthropic_client: Optional[Anthropic] = None
        self._openai_client: Optional[OpenAI] = None

    def generate_text(self, prompt: str, params: Optional[LLMGenerationParams] = None) -> str:
        model = params.model if params and params.model else self.default_model
        timeout = (params.timeout_seconds if params else None) or settings.LLM_REQUEST_TIMEOUT_SECONDS
        with start_langfuse_generation(
            name="llm.generate_text",
            model=model,
            input=prompt,
            model_parameters={
                "max_tokens": params.max_tokens if params else None,
                "temperature": params.temperature if params else 0.2,
            },
            tags=["llm"],
        ) as generation:
            if model.startswith("claude"):
                text = self._generate_with_anthropic(prompt, model, params, timeout)
            else:
                text = self._generate_with_openai(prompt, model, params, timeout)
            if generation is not None:
                generation.update(output=text)
            return text

    def _ensure_openai_client(self, timeout: float) -> OpenAI:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise LLMClientConfigError("OPENAI_API_KEY not configured")

        if not self._openai_client:
            client_kwargs: dict[str, Any] = {
                "api_key": api_key,
                "timeout": float(timeout),
                "max_retries": settings.LLM_REQUEST_RETRIES,
            }
            base_url = os.getenv("OPENAI_BASE_URL")
            if base_url:
                client_kwargs["base_url"] = base_url
            client_class = get_openai_client_class()
            self._openai_client = client_class(**client_kwargs)
        return self._openai_client

    def _generate_with_openai(
        self, prompt: str, model: str, params: Optional[LLMGenerationParams], timeout: float
    ) -> str:
        client = self._ensure_openai_client(timeout)
        request_kwargs: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": params.temperature if params else 0.2,
            "timeout": timeout,
        }
        if params and params.max_tokens:
            request_kwargs["max_tokens"] = params.max_tokens
        try:
            response = client.chat.completions.create(**request_kwargs)
        except openai.APITimeoutError as exc:
            logger.warning("OpenAI request timed out", extra={"model": model, "timeout": timeout})
            raise LLMTimeoutError(model, timeout) from exc

        choices = getattr(response, "choices", None) or []
        text = choices[0].message.content if choices else None
        if not text:
            raise RuntimeError(f"OpenAI returned no content for model {model}")
        return text

    def _generate_with_anthropic(
        self, prompt: str, model: str, params: Optional[LLMGenerationParams], timeout: float
    ) -> str:
        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise LLMClientConfigError("ANTHROPIC_API_KEY not configured")

        if not self._anthropic_client:
            self._anthropic_client = Anthropic(api_key=api_key, max_retries=settings.LLM_REQUEST_RETRIES)

        max_tokens = params.max_tokens if params and params.max_tokens else 1024
        temperature = params.temperature if params else 0.2
        try:
            response = self._anthropic_client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
        except anthropic.APITimeoutError as exc:
            logger.warning("Anthropic request timed out", extra={"model": model, "timeout": timeout})
            raise LLMTimeoutError(model, timeout) from exc

        text_parts = [content.text for content in response.content if getattr(content, "text", None)]
        if not text_parts:
            raise RuntimeError(f"Anthropic returned no content for model {model}")
        return "".join(text_parts)
