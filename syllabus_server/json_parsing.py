"""
Lenient JSON extraction from free-text oracle responses.

Generative models wrap JSON in prose or markdown fences often enough that a
plain ``json.loads`` is not an option. The parser here isolates the outermost
object and reports success or failure without raising.
"""
from __future__ import annotations

import json
import re
import typing as t
from dataclasses import dataclass


_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*\r?\n?")


@dataclass(frozen=True)
class JsonParseResult:
    """Tagged outcome of :func:`parse_json_object`."""
    ok: bool
    data: t.Optional[dict[str, t.Any]] = None
    error: t.Optional[str] = None


def strip_code_fences(text: str) -> str:
    """Remove markdown code fence markers (```json ... ```)."""
    return _FENCE_RE.sub("", text)


def isolate_object_span(text: str) -> t.Optional[str]:
    """Return the text from the first '{' to the last '}', if any."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    return text[start:end + 1]


def parse_json_object(text: t.Optional[str]) -> JsonParseResult:
    if not text:
        return JsonParseResult(ok=False, error="empty response")

    span = isolate_object_span(strip_code_fences(text))
    if span is None:
        return JsonParseResult(ok=False, error="no JSON object found")

    try:
        data = json.loads(span)
    except json.JSONDecodeError as e:
        return JsonParseResult(ok=False, error=f"invalid JSON: {e.msg}")

    if not isinstance(data, dict):
        return JsonParseResult(ok=False, error="top-level JSON value is not an object")
    return JsonParseResult(ok=True, data=data)
