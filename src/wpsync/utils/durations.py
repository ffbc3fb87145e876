from __future__ import annotations

import math
import re

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> float:
    """Brief: Parse a duration such as "250ms", "3m" or "1h30m" into seconds.

    Inputs:
      - text: Sequence of <number><unit> parts (units ns, us, ms, s, m, h),
        or a bare number of seconds. "0" is accepted.

    Outputs:
      - float: Seconds.

    Raises:
      - ValueError: empty, negative, or unparseable input.

    Example:
      >>> parse_duration("1m30s")
      90.0
      >>> parse_duration("2.5")
      2.5
    """
    s = str(text).strip()
    if not s:
        raise ValueError("empty duration")
    if s.startswith("-"):
        raise ValueError(f"negative duration {text!r}")
    try:
        value = float(s)
    except ValueError:
        pass
    else:
        if not math.isfinite(value):
            raise ValueError(f"invalid duration {text!r}")
        return value

    total = 0.0
    pos = 0
    for match in _PART.finditer(s):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    if pos != len(s) or pos == 0:
        raise ValueError(f"invalid duration {text!r}")
    return total
