"""Parsing of duration strings such as ``"30s"``, ``"2m"`` or ``"1h30m"``.

Alert annotations and environment settings express timeouts in the same
grammar Alertmanager users already know from Prometheus tooling: an
optional sign followed by one or more ``<number><unit>`` pairs.  Valid
units are ``ns``, ``us`` (or ``µs``), ``ms``, ``s``, ``m`` and ``h``.
A bare ``"0"`` is also accepted.

Durations are returned as float seconds, the unit every timeout in this
package is expressed in.
"""

import math
import re
import threading

from command_responder.alerts.errors import ConfigParseError

#: Seconds per unit suffix.
UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,  # U+00B5 micro sign
    "μs": 1e-6,  # U+03BC greek mu
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

#: Largest magnitude accepted, the span of a signed 64-bit nanosecond count.
MAX_DURATION = (2**63 - 1) / 1e9

# Blocking calls reject timeouts near the platform limit once the current
# clock reading is added, so waits are capped well below it.
_MAX_WAIT = threading.TIMEOUT_MAX / 2

_RE_COMPONENT = re.compile(r"(\d+\.?\d*|\.\d+)([a-zµμ]+)")


def parse_duration(value: str) -> float:
    """Convert a duration string to seconds.

    Args:
        value: Text such as ``"300ms"``, ``"1.5s"`` or ``"-2m"``.

    Returns:
        The duration in seconds.

    Raises:
        ConfigParseError: If *value* does not follow the duration grammar
            or exceeds :data:`MAX_DURATION`.
    """
    text = value.strip() if isinstance(value, str) else value
    if not isinstance(text, str) or not text:
        raise ConfigParseError(f"invalid duration {value!r}")

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    if text == "0":
        return 0.0

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _RE_COMPONENT.match(text, pos)
        if match is None:
            raise ConfigParseError(f"invalid duration {value!r}")
        number, unit = match.groups()
        if unit not in UNITS:
            raise ConfigParseError(f"unknown unit {unit!r} in duration {value!r}")
        total += float(number) * UNITS[unit]
        pos = match.end()

    if pos == 0:
        raise ConfigParseError(f"invalid duration {value!r}")
    return check_duration(sign * total, value)


def check_duration(seconds: float, value: object = None) -> float:
    """Return *seconds* if it is a finite duration within :data:`MAX_DURATION`.

    Raises:
        ConfigParseError: Otherwise.  *value* names the original input in
            the message.
    """
    if math.isnan(seconds) or abs(seconds) > MAX_DURATION:
        shown = seconds if value is None else value
        raise ConfigParseError(f"duration {shown!r} out of range")
    return seconds


def wait_timeout(seconds: float) -> float:
    """Clamp *seconds* to what :mod:`threading` and :mod:`subprocess` accept."""
    return min(seconds, _MAX_WAIT)


def format_duration(seconds: float) -> str:
    """Render *seconds* back into a compact duration string for logs."""
    if seconds == 0:
        return "0s"
    if seconds < 1:
        return f"{seconds * 1000:g}ms"
    return f"{seconds:g}s"
