"""HH:MM:SS timestamp parsing and formatting."""

import re

_FIELD = re.compile(r"\d+", re.ASCII)


class ParseError(ValueError):
    """Raised when a timestamp is not three colon-separated integers."""
    pass


def parse_timestamp(text: str) -> int:
    """Convert ``H:MM:SS`` text into whole seconds.

    Minutes and seconds are not bounded to 0-59; ``00:90:00`` is 5400.
    """
    parts = text.strip().split(":")
    if len(parts) != 3:
        raise ParseError(f"Invalid time format {text!r}, expected HH:MM:SS")
    for part in parts:
        if not _FIELD.fullmatch(part):
            raise ParseError(f"Invalid time format {text!r}, expected HH:MM:SS")
    h, m, s = (int(p) for p in parts)
    return h * 3600 + m * 60 + s


def format_seconds(seconds: int) -> str:
    if seconds < 0:
        raise ValueError(f"Cannot format negative seconds: {seconds}")
    seconds = int(seconds)
    h = seconds // 3600
    m = (seconds % 3600) // 60
    s = seconds % 60
    return f"{h:02d}:{m:02d}:{s:02d}"
