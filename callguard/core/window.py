"""Parsing of compact window specifications such as ``"10Min"``."""

from __future__ import annotations

import re

from callguard.core.errors import ConfigurationError

UNIT_SECONDS: dict[str, int] = {
    "Sec": 1,
    "Min": 60,
    "Hrs": 3600,
}

_WINDOW_RE = re.compile(r"(?P<value>[0-9]+)(?P<unit>[A-Za-z]+)")


def parse_window(window: str) -> int:
    """Resolve a window specification into a number of seconds.

    The accepted form is a positive integer immediately followed by one of
    the units ``Sec``, ``Min`` or ``Hrs`` (e.g. ``"20Sec"``, ``"3Hrs"``).

    Args:
        window: Window specification string.

    Returns:
        Window length in seconds.

    Raises:
        ConfigurationError: If the string is malformed, the unit is unknown
            or the value is not positive.
    """

    if not isinstance(window, str):
        raise ConfigurationError(
            code="configuration_error",
            message="window must be a string such as '10Min'",
            details={"value": repr(window)},
        )

    match = _WINDOW_RE.fullmatch(window)
    if match is None or match.group("unit") not in UNIT_SECONDS:
        raise ConfigurationError(
            code="configuration_error",
            message=f"Incorrect time window specified: {window!r}",
            details={
                "value": window,
                "hint": "use <integer><unit> with unit one of Sec, Min, Hrs",
            },
        )

    value = int(match.group("value"))
    if value <= 0:
        raise ConfigurationError(
            code="configuration_error",
            message=f"Window length must be positive: {window!r}",
            details={"value": window},
        )

    return value * UNIT_SECONDS[match.group("unit")]
