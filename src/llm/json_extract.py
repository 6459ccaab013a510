# src/llm/json_extract.py — v1
"""Extract a JSON value from free-form model output.

Models wrap JSON in prose, markdown fences or both. Extraction order:

1. The first fenced ```json block, if it parses.
2. Every balanced ``{...}`` / ``[...]`` substring (string and escape aware),
   tried longest first.

Nothing parseable raises MalformedOutputError with a truncated diagnostic.
"""

from __future__ import annotations

import json
import re
from typing import Any

from scriptconveyor.core.errors import MalformedOutputError

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n(.*?)```", re.DOTALL)
_CLOSERS = {"{": "}", "[": "]"}


def extract_json(text: str) -> Any:
    """Return the most complete JSON value found in text.

    Raises:
        MalformedOutputError: No candidate parses.
    """
    if not text or not text.strip():
        raise MalformedOutputError("Empty model response")

    for match in _FENCE_RE.finditer(text):
        try:
            return json.loads(match.group(1).strip())
        except json.JSONDecodeError:
            continue

    candidates = sorted(_balanced_candidates(text), key=len, reverse=True)
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    raise MalformedOutputError("No valid JSON found in model response", raw_text=text)


def extract_json_object(text: str) -> dict[str, Any]:
    """Like extract_json, but the result must be an object."""
    value = extract_json(text)
    if not isinstance(value, dict):
        raise MalformedOutputError(
            f"Expected a JSON object, got {type(value).__name__}", raw_text=text
        )
    return value


def _balanced_candidates(text: str) -> list[str]:
    """All balanced bracket substrings, one per opening position."""
    found: list[str] = []
    for start, char in enumerate(text):
        if char in _CLOSERS:
            end = _find_balanced_end(text, start)
            if end is not None:
                found.append(text[start:end + 1])
    return found


def _find_balanced_end(text: str, start: int) -> int | None:
    """Index of the bracket closing text[start], or None if unbalanced."""
    stack = [_CLOSERS[text[start]]]
    in_string = False
    escaped = False

    for i in range(start + 1, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ("}", "]"):
            if ch != stack[-1]:
                return None
            stack.pop()
            if not stack:
                return i
    return None
