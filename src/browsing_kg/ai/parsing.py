"""Lenient extraction of JSON objects from free-form model output.

Models often wrap the requested JSON in prose or Markdown fences.  We
locate the first *balanced* ``{...}`` block (ignoring braces inside
string literals), decode it, and validate it against a pydantic model.

``parse_json_response`` never raises: it returns either ``Parsed`` or
``ParseError`` and the caller decides what a failure means.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)


@dataclass(frozen=True)
class Parsed(Generic[_M]):
    value: _M


@dataclass(frozen=True)
class ParseError:
    reason: str
    raw: str = ""


ParseResult = Union[Parsed[_M], ParseError]


def extract_json_block(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring of *text*, if any."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        ch = text[pos]
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
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]
    # Unterminated: every later brace is nested inside this one.
    return None


def parse_json_response(text: str, model: type[_M]) -> ParseResult[_M]:
    """Extract, decode and validate the JSON object in *text*."""
    block = extract_json_block(text or "")
    if block is None:
        return ParseError("no JSON object found", text or "")

    try:
        data = json.loads(block)
    except json.JSONDecodeError as exc:
        return ParseError(f"invalid JSON: {exc}", block)

    try:
        return Parsed(model.model_validate(data))
    except ValidationError as exc:
        return ParseError(f"schema mismatch: {exc.error_count()} errors", block)
