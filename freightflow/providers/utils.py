"""Helper utilities for provider adapters."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import httpx

MAX_ERROR_BODY_LENGTH = 2000

# Matched case-insensitively against the stringified error. Bare "exceeded" is
# deliberately absent: it also matches unrelated failures such as size limits.
DEFAULT_RATE_LIMIT_INDICATORS: tuple[str, ...] = (
    "429",
    "503",
    "rate limit",
    "rate_limit",
    "quota",
    "too many requests",
    "resource exhausted",
    "resource_exhausted",
    "request limit",
    "over_query_limit",
    "insufficient_quota",
    "quota exceeded",
    "limit exceeded",
    "exceeded your current quota",
)


class RateLimitClassifier:
    """Substring heuristic deciding whether an error signals capacity exhaustion.

    It only sees the error text, so it works even when a vendor reports throttling in
    a free-text body. Errors worded in ways the table does not list are missed.
    """

    def __init__(self, indicators: Iterable[str] = DEFAULT_RATE_LIMIT_INDICATORS) -> None:
        self._indicators = tuple(indicator.lower() for indicator in indicators)

    @property
    def indicators(self) -> tuple[str, ...]:
        return self._indicators

    def extend(self, extra: Iterable[str]) -> "RateLimitClassifier":
        return RateLimitClassifier((*self._indicators, *extra))

    def __call__(self, error: BaseException | str | None) -> bool:
        if error is None:
            return False
        text = str(error).lower()
        return any(indicator in text for indicator in self._indicators)


is_rate_limited = RateLimitClassifier()


def extract_error_body(response: httpx.Response) -> str:
    """Return the raw response body as trimmed text for diagnostics."""

    text = getattr(response, "text", None) or ""
    compact = text.strip()
    if len(compact) > MAX_ERROR_BODY_LENGTH:
        compact = f"{compact[: MAX_ERROR_BODY_LENGTH - 3]}..."
    return compact


def dig(data: Any, *path: str | int) -> Any:
    """Follow a mixed key/index path through decoded JSON, returning None when absent."""

    current = data
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
        elif not isinstance(current, dict) or step not in current:
            return None
        current = current[step]
    return current


__all__ = [
    "DEFAULT_RATE_LIMIT_INDICATORS",
    "RateLimitClassifier",
    "dig",
    "extract_error_body",
    "is_rate_limited",
]
