"""Coercion helpers for interpolated block parameters."""

import re
from typing import Any, Optional


_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')


def parse_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """
    Parse a leading integer the way form inputs are read ("250ms" -> 250).

    Returns:
        The integer, or default when there is none
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if value is None:
        return default
    match = _LEADING_INT.match(str(value))
    if not match:
        return default
    return int(match.group(1))


def parse_bool(value: Any, default: bool = False) -> bool:
    """Interpret checkbox-style values; strings like "false"/"0"/"no" are False."""
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() not in ('false', '0', 'no', 'off')


def normalize_choice(value: Any, default: str) -> str:
    """Lower-case a select-style parameter, falling back to default when empty."""
    if value is None:
        return default
    text = str(value).strip().lower()
    return text or default
