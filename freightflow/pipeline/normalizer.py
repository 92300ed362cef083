"""Canonicalization of raw AI completions."""

from __future__ import annotations

import json
import re
from typing import Any

from freightflow.core.exceptions import ResponseFormatError

PREVIEW_LENGTH = 200
_FENCE = "```"
_LANGUAGE_TAG = re.compile(r"[A-Za-z]+")


def strip_code_fence(raw: str) -> str:
    """Remove one surrounding markdown fence, with or without a language tag."""
    text = raw.strip()
    if not text.startswith(_FENCE):
        return text
    body = text[len(_FENCE):]
    # A word right after the opening fence is a language tag, with or without a newline.
    tag = _LANGUAGE_TAG.match(body)
    if tag:
        body = body[tag.end():]
    if body.rstrip().endswith(_FENCE):
        body = body.rstrip()[: -len(_FENCE)]
    return body.strip()


def _preview(text: str) -> str:
    return text[:PREVIEW_LENGTH]


def normalize(raw: str | bytes) -> str:
    """Return the canonical JSON array text for an AI completion.

    An object becomes a one-element array and an array passes through. Anything else
    raises ``ResponseFormatError``. Feeding the output back in returns it unchanged.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    cleaned = strip_code_fence(raw)
    try:
        parsed: Any = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ResponseFormatError(
            f"invalid JSON in AI response: {exc.msg}; response starts with: {_preview(cleaned)!r}"
        ) from exc

    if isinstance(parsed, dict):
        parsed = [parsed]
    elif not isinstance(parsed, list):
        raise ResponseFormatError(
            f"AI response must be a JSON array or object, got {type(parsed).__name__}"
        )
    return json.dumps(parsed, ensure_ascii=False)


__all__ = ["normalize", "strip_code_fence"]
