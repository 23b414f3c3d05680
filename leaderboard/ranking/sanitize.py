"""Coercion of untrusted input into bounded values.

Every function here is total: any input type is accepted and the result is
always within the documented bounds.
"""

from __future__ import annotations

import math
import re
from typing import Any

MAX_ID_LENGTH = 96
DEFAULT_TOP_LIMIT = 10
MIN_TOP_LIMIT = 1
MAX_TOP_LIMIT = 50

_ID_STRIP = re.compile(r"[^A-Za-z0-9_\-:.]")
# String forms read as numbers: plain decimals/exponents and 0x/0o/0b integers.
_DECIMAL = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)
_PREFIXED_INT = re.compile(r"0(?:[xX][0-9a-fA-F]+|[oO][0-7]+|[bB][01]+)", re.ASCII)


def _to_number(value: Any) -> float | int | None:
    """Numeric view of `value`, or None when it has none (or is not finite)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return 0
        if _PREFIXED_INT.fullmatch(raw):
            return int(raw, 0)
        if not _DECIMAL.fullmatch(raw):
            return None
        parsed = float(raw)
        return parsed if math.isfinite(parsed) else None
    return None


def _floor(value: float | int) -> int:
    if isinstance(value, int):
        return value
    return math.floor(value)


def to_safe_score(value: Any) -> int:
    parsed = _to_number(value)
    if parsed is None:
        return 0
    return max(0, _floor(parsed))


def to_safe_timestamp(value: Any, fallback: int) -> int:
    parsed = _to_number(value)
    if parsed is None:
        return fallback
    return max(0, _floor(parsed))


def clamp_top_limit(value: Any) -> int:
    parsed = _to_number(value)
    if parsed is None:
        return DEFAULT_TOP_LIMIT
    return max(MIN_TOP_LIMIT, min(MAX_TOP_LIMIT, _floor(parsed)))


def sanitize_string(value: Any, fallback: str, max_len: int = 64) -> str:
    raw = value.strip() if isinstance(value, str) else ""
    if not raw:
        return fallback
    return raw[:max_len]


def sanitize_id(value: Any, fallback: str = "") -> str:
    """Bounded identifier; "" means invalid (callers must not substitute)."""
    base = sanitize_string(value, fallback, MAX_ID_LENGTH)
    if not base:
        return ""
    return _ID_STRIP.sub("", base)[:MAX_ID_LENGTH]
