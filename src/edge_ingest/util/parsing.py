"""Tolerant coercion for numbers found in upstream payloads and headers."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def _number_text(value: Any) -> str | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    text = str(value).strip()
    return text or None


def safe_float(value: Any) -> float | None:
    """Parse number-like input into float, returning None when invalid."""
    text = _number_text(value)
    if text is None:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def safe_int(value: Any) -> int | None:
    """Parse number-like input into int, returning None when invalid.

    Floats truncate toward zero; numeric strings must be integral (`"+120"`
    is accepted, `"1.5"` is not).
    """
    if isinstance(value, float):
        return int(value)
    text = _number_text(value)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def count(value: Any) -> int:
    """Non-negative counter (engagement, units); anything unusable is 0."""
    parsed = safe_int(value)
    return parsed if parsed is not None and parsed > 0 else 0


def header_count(headers: Mapping[str, str], name: str) -> int | None:
    """Non-negative counter header, or None when absent or malformed."""
    raw = headers.get(name)
    if raw is None:
        return None
    parsed = safe_int(raw)
    if parsed is None or parsed < 0:
        return None
    return parsed
