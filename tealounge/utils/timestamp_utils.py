"""
Timestamp utilities for consistent time handling across the system.
"""

import re
import time
from datetime import datetime
from typing import Any, Optional, Union


def to_datetime(timestamp: Optional[Union[int, float]] = None) -> datetime:
    """Convert timestamp to datetime object.

    Args:
        timestamp: Unix timestamp in seconds (optional, uses current time if None)

    Returns:
        datetime object
    """
    if timestamp is None:
        timestamp = time.time()
    return datetime.fromtimestamp(timestamp)


def parse_timestamp(value: Any) -> datetime:
    """Normalise an inbound timestamp into a naive local datetime.

    Accepts datetime objects, ISO-8601 strings (a trailing 'Z' is allowed) and
    Unix epochs. Epoch values above 1e11 are treated as milliseconds, which is
    what browser clients send.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise ValueError(f'Invalid timestamp: {value!r}')
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return to_datetime(seconds)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f'Invalid timestamp: {value!r}') from e
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f'Invalid timestamp: {value!r}')

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


TIME_REFERENCE_PATTERNS = [
    re.compile(r'\b(today|tomorrow|tonight|this evening)\b', re.IGNORECASE),
    re.compile(r'\b(monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b', re.IGNORECASE),
    re.compile(r'\b(\d{1,2})(st|nd|rd|th)\b', re.IGNORECASE),
    re.compile(r'\b(next week|this week|next month)\b', re.IGNORECASE),
]


def find_time_reference(text: str) -> Optional[str]:
    """First day name, relative day or ordinal date mentioned in `text`, lowercased.

    Patterns are tried in a fixed order, so 'tomorrow' wins over 'friday' when
    both appear.
    """
    for pattern in TIME_REFERENCE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0).lower()
    return None
