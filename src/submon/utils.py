"""Utility functions for submon."""

import math
from enum import StrEnum
from typing import TypeVar

E = TypeVar("E", bound=StrEnum)


def format_duration(seconds: int) -> str:
    """Format whole seconds as a compact duration.

    The hour component is dropped below one hour and the minute component
    below one minute.

    Args:
        seconds: Elapsed seconds.

    Returns:
        Duration such as ``45s``, ``2m33s`` or ``1h6m40s``.
    """
    seconds = max(0, int(seconds))
    if seconds >= 3600:
        return f"{seconds // 3600}h{seconds % 3600 // 60}m{seconds % 60}s"
    if seconds >= 60:
        return f"{seconds // 60}m{seconds % 60}s"
    return f"{seconds}s"


def truncate(text: str, max_len: int) -> str:
    """Cut text to at most max_len characters."""
    return text[:max_len] if max_len > 0 else ""


def coerce_choice(
    value: str | None,
    enum_type: type[E],
    default: E,
    aliases: dict[str, E] | None = None,
) -> E:
    """Resolve a user-supplied string to an enum member.

    Args:
        value: Raw option value (may be None).
        enum_type: The StrEnum to resolve against.
        default: Member returned for missing or unknown values.
        aliases: Optional extra spellings mapped to members.

    Returns:
        The matching member, or default.
    """
    if value is None:
        return default
    key = value.strip().lower()
    if aliases and key in aliases:
        return aliases[key]
    try:
        return enum_type(key)
    except ValueError:
        return default


def parse_positive_number(value: str | float | int | None, default: float) -> float:
    """Parse a positive number, falling back to default.

    Args:
        value: Raw value from a flag, environment variable or config.
        default: Returned when value is missing, non-numeric or not positive.

    Returns:
        The parsed number or default.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number) or number <= 0:
        return default
    return number
