"""Go-style duration strings (``300ms``, ``5m``, ``1h30m``) <-> timedelta."""

import datetime as dt
import re

_UNITS_US = {
    "ns": 0.001,
    "us": 1,
    "µs": 1,
    "μs": 1,
    "ms": 1_000,
    "s": 1_000_000,
    "m": 60 * 1_000_000,
    "h": 3600 * 1_000_000,
}

_COMPONENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

# Go durations are int64 nanoseconds
MAX_DURATION_US = (2**63 - 1) // 1_000


def parse_duration(value: str) -> dt.timedelta:
    """Parse a duration such as ``1h30m`` or ``1.5s``.

    Raises ``ValueError`` for anything that is not a valid duration. The
    sign is accepted; callers decide whether non-positive values make sense.
    """
    s = value.strip()
    if not s:
        raise ValueError("empty duration")

    sign = 1
    if s[0] in "+-":
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    if s == "0":
        return dt.timedelta(0)

    total_us = 0.0
    pos = 0
    while pos < len(s):
        m = _COMPONENT.match(s, pos)
        if m is None:
            raise ValueError(f"invalid duration: {value!r}")
        total_us += float(m.group(1)) * _UNITS_US[m.group(2)]
        pos = m.end()
    if pos == 0:
        raise ValueError(f"invalid duration: {value!r}")
    if not total_us <= MAX_DURATION_US:
        raise ValueError(f"duration out of range: {value!r}")

    try:
        return dt.timedelta(microseconds=sign * round(total_us))
    except OverflowError:
        raise ValueError(f"duration out of range: {value!r}") from None


def format_duration(delta: dt.timedelta) -> str:
    """Render a timedelta the way Go prints a time.Duration (``5m0s``)."""
    total_us = (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds
    if total_us == 0:
        return "0s"

    sign = "-" if total_us < 0 else ""
    total_us = abs(total_us)

    if total_us < 1_000:
        return f"{sign}{total_us}µs"
    if total_us < 1_000_000:
        return f"{sign}{_trim(total_us / 1_000)}ms"

    hours, rem = divmod(total_us, 3600 * 1_000_000)
    minutes, rem = divmod(rem, 60 * 1_000_000)
    seconds = _trim(rem / 1_000_000)

    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return f"{out}{seconds}s"


def _trim(number: float) -> str:
    text = f"{number:.6f}".rstrip("0").rstrip(".")
    return text or "0"
