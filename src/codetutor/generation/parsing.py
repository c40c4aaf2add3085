"""Structured-output extraction for generation responses.

Generation backends answer in free text that may wrap the requested JSON in
markdown fences or surrounding prose. This module extracts the first
top-level JSON array or object from such text, decodes it, and validates it
against a Pydantic schema. Every step reports failure through a
``ParseResult`` instead of raising, so callers can map a malformed response
to "no findings" without guarding each call.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Generic, Iterator, TypeVar

from pydantic import TypeAdapter, ValidationError

T = TypeVar("T")

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n(.*?)\n\s*```", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """Outcome of a structured decode attempt.

    Attributes:
        ok: True when a value was extracted and validated
        value: The validated value (None on failure)
        error: Human-readable failure reason (None on success)
    """

    ok: bool
    value: T | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: T) -> ParseResult[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> ParseResult[T]:
        return cls(ok=False, error=error)


def extract_json_block(text: str) -> str | None:
    """Extract the first well-formed top-level JSON array or object from text.

    Fenced code blocks are tried first; otherwise the raw text is scanned
    for balanced ``[...]`` or ``{...}`` spans, honouring string literals and
    escapes. The first span that decodes as JSON wins.

    Args:
        text: Text that may contain JSON

    Returns:
        The JSON substring, or None if no decodable structure is found
    """
    if not text:
        return None

    sources = [m.group(1) for m in _FENCE_PATTERN.finditer(text)]
    sources.append(text)

    for source in sources:
        for candidate in _iter_balanced(source):
            try:
                json.loads(candidate)
            except json.JSONDecodeError:
                continue
            return candidate

    return None


def _iter_balanced(text: str) -> Iterator[str]:
    """Yield balanced bracket spans in order of their opening position."""
    start = _next_opening(text, 0)
    while start != -1:
        end = _matching_close(text, start)
        if end is not None:
            yield text[start : end + 1]
        start = _next_opening(text, start + 1)


def _next_opening(text: str, pos: int) -> int:
    starts = [i for i in (text.find("[", pos), text.find("{", pos)) if i != -1]
    return min(starts) if starts else -1


def _matching_close(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        char = text[i]

        if escape_next:
            escape_next = False
            continue

        if char == "\\" and in_string:
            escape_next = True
            continue

        if char == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if char in "[{":
            depth += 1
        elif char in "]}":
            depth -= 1
            if depth == 0:
                return i

    return None


def parse_json_payload(text: str, schema: Any) -> ParseResult[Any]:
    """Extract, decode and validate a JSON payload from generated text.

    Args:
        text: Raw generation response
        schema: Any type accepted by ``pydantic.TypeAdapter``

    Returns:
        ParseResult carrying the validated value or the failure reason
    """
    block = extract_json_block(text)
    if block is None:
        return ParseResult.failure("no JSON array or object found in response")

    try:
        data = json.loads(block)
    except json.JSONDecodeError as e:
        return ParseResult.failure(f"invalid JSON: {e}")

    try:
        value = TypeAdapter(schema).validate_python(data)
    except ValidationError as e:
        return ParseResult.failure(f"schema validation failed: {e.error_count()} error(s)")

    return ParseResult.success(value)
