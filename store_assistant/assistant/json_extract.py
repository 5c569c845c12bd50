from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_PAIRS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def extract_first_json_value(text: str) -> dict[str, Any] | list[Any]:
    """
    Extract and parse the first balanced top-level JSON object or array from a text blob.

    Models often wrap JSON in prose or code fences even when told not to. Brackets inside
    string literals are ignored while scanning.
    """

    if not isinstance(text, str):
        raise ValueError("Input text must be a string")
    raw = strip_code_fences(text)
    if not raw:
        raise ValueError("Input text is empty")

    start: int | None = None
    stack: list[str] = []
    in_string = False
    escape = False

    for i, ch in enumerate(raw):
        if start is None:
            if ch in _PAIRS:
                start = i
                stack = [_PAIRS[ch]]
                in_string = False
                escape = False
            continue

        if in_string:
            if escape:
                escape = False
                continue
            if ch == "\\":
                escape = True
                continue
            if ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
            continue
        if ch in _PAIRS:
            stack.append(_PAIRS[ch])
            continue
        if ch in ("}", "]"):
            if not stack or ch != stack[-1]:
                raise ValueError("Unbalanced JSON brackets in response text")
            stack.pop()
            if not stack:
                candidate = raw[start : i + 1].strip()
                return json.loads(candidate)

    raise ValueError("Unable to locate a complete JSON value in response text")
