"""Utility helpers for the AniCatalog service."""

from __future__ import annotations

import math
from typing import Any, Mapping


def coerce_int(value: Any, *, default: int | None = None) -> int | None:
    """Return ``value`` as an int, or ``default`` when it cannot be converted."""

    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def coerce_float(value: Any, *, default: float | None = None) -> float | None:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def coerce_text(value: Any) -> str | None:
    """Return a stripped string, ``None`` for blanks and non-scalar values."""

    if value is None or isinstance(value, (dict, list, tuple, set)):
        return None
    text = str(value).strip()
    return text or None


def as_mapping(value: Any) -> Mapping[str, Any]:
    """Return ``value`` when it is a mapping, otherwise an empty one."""

    if isinstance(value, Mapping):
        return value
    return {}


def first_text(*candidates: Any) -> str | None:
    for candidate in candidates:
        text = coerce_text(candidate)
        if text:
            return text
    return None


def compact_number(value: Any) -> int | float | None:
    """Keep fractional ordinals (``2.5``) but turn ``3.0`` into ``3``."""

    number = coerce_float(value)
    if number is None:
        return None
    if number.is_integer():
        return int(number)
    return number


def join_asset_url(host: str, path: Any) -> str | None:
    """Join a relative upstream asset path with its public host."""

    text = coerce_text(path)
    if not text:
        return None
    if text.startswith(("http://", "https://")):
        return text
    if text.startswith("//"):
        return f"https:{text}"
    return f"{host.rstrip('/')}/{text.lstrip('/')}"
