"""
backend/matchpick/services/oracle_parser.py

Purpose:
    Best-effort recovery of the JSON object inside oracle completion text.
    The oracle is asked for bare JSON but regularly wraps it in Markdown
    fences or surrounds it with prose.
"""

from __future__ import annotations

import json
from typing import Any

from matchpick.models.analysis import RAW_TEXT_KEY

_FENCE = "```"


def parse_oracle_text(text: str | None) -> dict[str, Any]:
    """Parse completion text into a dict.

    Empty text gives ``{}``. Text that cannot be parsed is kept as
    ``{"raw_text": text}`` so the cache read path can retry it later.
    """
    if not text or not text.strip():
        return {}

    cleaned = _strip_fence(text.strip())

    for span in (_first_balanced_object(cleaned), _outer_braces(cleaned), cleaned):
        if not span:
            continue
        try:
            parsed = json.loads(span)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return {RAW_TEXT_KEY: text}


def is_raw_result(result: Any) -> bool:
    """True for the ``{"raw_text": ...}`` fallback shape."""
    return isinstance(result, dict) and isinstance(result.get(RAW_TEXT_KEY), str)


def _strip_fence(text: str) -> str:
    if not text.startswith(_FENCE):
        return text
    # Drop the opening fence line (``` or ```json) and the closing fence.
    first_newline = text.find("\n")
    body = text[first_newline + 1:] if first_newline != -1 else text[len(_FENCE):]
    last_fence = body.rfind(_FENCE)
    if last_fence != -1:
        body = body[:last_fence]
    return body.strip()


def _first_balanced_object(text: str) -> str | None:
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
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
                return text[start:idx + 1]
    return None


def _outer_braces(text: str) -> str | None:
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        return None
    return text[first:last + 1]
