"""Parsing of k6-style duration strings (``"30s"``, ``"2m"``, ``"1m30s"``)."""

from __future__ import annotations

import re

_TIME_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 60.0 * 60.0}

_NUMBER = r"\d+(?:\.\d+)?"
_DURATION_PATTERN = re.compile(rf"(?:{_NUMBER}(?:ms|s|m|h))+")
_COMPONENT_PATTERN = re.compile(rf"({_NUMBER})(ms|s|m|h)")
_PLAIN_NUMBER_PATTERN = re.compile(rf"{_NUMBER}")


def parse_duration(value: str | float) -> float:
    """Parse a duration into seconds.

    Accepts a bare number of seconds (``90``, ``"1.5"``) or a sequence of
    number/unit pairs with units ``ms``, ``s``, ``m`` and ``h``
    (``"2m"``, ``"1h30m"``, ``"500ms"``). Negative durations are rejected.

    Args:
        value: Duration as a number of seconds or a duration string.

    Returns:
        The duration in seconds.

    Raises:
        ValueError: If the value cannot be parsed or is negative.
    """
    if isinstance(value, bool) or not isinstance(value, str | int | float):
        msg = f"Invalid duration: {value!r}"
        raise ValueError(msg)

    if isinstance(value, int | float):
        if value < 0:
            msg = f"Duration must be non-negative, got {value}"
            raise ValueError(msg)
        return float(value)

    text = value.strip().lower()
    if _PLAIN_NUMBER_PATTERN.fullmatch(text):
        return float(text)

    if not _DURATION_PATTERN.fullmatch(text):
        msg = f"Invalid duration: {value!r} (expected e.g. '30s', '2m', '1m30s')"
        raise ValueError(msg)

    return sum(
        float(number) * _TIME_UNITS[unit]
        for number, unit in _COMPONENT_PATTERN.findall(text)
    )


def format_duration(seconds: float) -> str:
    """Render seconds the way durations are written on the command line.

    Examples: ``120.0 -> "2m"``, ``90.0 -> "1m30s"``, ``0.5 -> "500ms"``.
    """
    if seconds <= 0:
        return "0s"
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"

    whole, fraction = divmod(seconds, 1)
    hours, rest = divmod(int(whole), 3600)
    minutes, secs = divmod(rest, 60)

    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or fraction or not parts:
        sec_value = secs + fraction
        parts.append(f"{sec_value:g}s")
    return "".join(parts)
