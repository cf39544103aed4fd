import re

NANOSECOND = 1e-9
MICROSECOND = 1e-6
MILLISECOND = 1e-3
SECOND = 1
MINUTE = 60
HOUR = 3600

UNIT_MAP = {
    "ns": NANOSECOND,
    "us": MICROSECOND,
    "µs": MICROSECOND,  # micro sign
    "μs": MICROSECOND,  # greek mu
    "ms": MILLISECOND,
    "s": SECOND,
    "m": MINUTE,
    "h": HOUR,
}

_COMPONENT = re.compile(r"(\d*\.?\d*)([^\d.]+)")


class BadDurationError(Exception):
    pass


def parse_duration(time_str: str) -> float:
    """Parses a duration string and returns seconds. The format is the one
    of Go's time.ParseDuration: a possibly signed sequence of decimal numbers,
    each with optional fraction and a unit suffix, e.g. "300ms", "-1.5h" or
    "2h45m". Valid units are "ns", "us" (or "µs"), "ms", "s", "m", "h".
    """
    s = time_str
    sign = 1
    if s[:1] in ("-", "+"):
        if s[0] == "-":
            sign = -1
        s = s[1:]

    if s == "0":
        return 0.0
    if not s:
        raise BadDurationError(f"invalid duration {time_str!r}")

    total = 0.0
    pos = 0
    while pos < len(s):
        m = _COMPONENT.match(s, pos)
        if m is None or m.group(1) in ("", "."):
            raise BadDurationError(f"invalid duration {time_str!r}")
        number, unit = m.groups()
        if unit not in UNIT_MAP:
            raise BadDurationError(
                f"unknown unit {unit!r} in duration {time_str!r}"
            )
        total += float(number) * UNIT_MAP[unit]
        pos = m.end()

    return sign * total


def duration_to_seconds(time_str: str) -> int:
    """Like parse_duration, truncated to whole seconds."""
    return int(parse_duration(time_str))
