"""Trim input validation.

Start/end arrive as free-form ``MM:SS`` text. Minutes and seconds are parsed
independently; a component that is missing or not a number counts as 0, and
only text with no numeric component at all yields "no value". Text with more
than one ``:`` (e.g. ``H:MM:SS``) is rejected rather than misread.
"""

import math
from typing import Optional
from clipcat.domain.errors import ValidationError
from clipcat.domain.models import TrimWindow


def _parse_component(text: str) -> Optional[float]:
    text = text.strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_time_text(text: Optional[str]) -> Optional[float]:
    """Parses ``MM:SS`` into seconds, or None when nothing numeric is present.

    >>> parse_time_text("2:30")
    150.0
    >>> parse_time_text("2:")
    120.0
    >>> parse_time_text(":") is None
    True
    """
    if text is None or not text.strip():
        return None

    text = text.strip()
    if text.count(":") > 1:
        raise ValidationError(f"Invalid time '{text}' (expected MM:SS).")

    minutes_text, _, seconds_text = text.partition(":")
    minutes = _parse_component(minutes_text)
    seconds = _parse_component(seconds_text)
    if minutes is None and seconds is None:
        return None
    total = (minutes or 0.0) * 60 + (seconds or 0.0)
    # Finite components can still overflow once minutes are scaled
    if not math.isfinite(total):
        return None
    return total


def parse_trim_window(start_text: Optional[str], end_text: Optional[str]) -> TrimWindow:
    """Builds a TrimWindow from raw start/end text or raises ValidationError."""
    start = parse_time_text(start_text)
    end = parse_time_text(end_text)

    if end is None:
        raise ValidationError("End time is required (MM:SS).")
    if start is None:
        start = 0.0
    if start < 0:
        raise ValidationError("Start time cannot be negative.")
    if end <= start:
        raise ValidationError(
            f"End time ({format_time(end)}) must be after start time ({format_time(start)})."
        )
    return TrimWindow(start_seconds=start, end_seconds=end)


def format_time(seconds: float) -> str:
    """Format time as M:SS (fractional seconds kept to 2 places)."""
    minutes, rest = divmod(max(0.0, seconds), 60)
    if rest == int(rest):
        return f"{int(minutes)}:{int(rest):02d}"
    return f"{int(minutes)}:{rest:05.2f}"
