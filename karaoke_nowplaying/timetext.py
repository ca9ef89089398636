"""Time-text parsing: pull M:SS / H:MM:SS tokens out of free text."""

import re
from typing import List, Optional

from .domain import TimeValue

# Optional leading minus (ASCII or Unicode), then M:SS or H:MM:SS.
# Digits directly around the token make it malformed.
TIME_PATTERN = re.compile(r"(?<!\d)([-−])?(\d+):(\d{2})(?::(\d{2}))?(?!\d)")


def parse_times(text: Optional[str]) -> List[TimeValue]:
    """
    Return every time token in text, in order of appearance.

    "12:34" -> 754s, "1:02:03" -> 3723s, "-0:10" -> 10s flagged negative.
    Text without a well-formed token yields an empty list.
    """
    if not text:
        return []

    values = []
    for match in TIME_PATTERN.finditer(text):
        sign, first, second, third = match.groups()
        if third is not None:
            seconds = int(first) * 3600 + int(second) * 60 + int(third)
        else:
            seconds = int(first) * 60 + int(second)
        values.append(TimeValue(seconds=seconds, negative=sign is not None))
    return values


def parse_time(text: Optional[str]) -> Optional[TimeValue]:
    """First time token in text, or None."""
    values = parse_times(text)
    return values[0] if values else None


def format_seconds(seconds: Optional[int]) -> str:
    """Render seconds as M:SS (or H:MM:SS); '--:--' when unknown."""
    if seconds is None:
        return "--:--"
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
