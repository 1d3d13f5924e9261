"""
Utility Functions
-----------------

Stateless helpers shared by the parser, codec and analytics engine:
locale-tolerant number parsing and local-time date arithmetic.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any

logger = logging.getLogger(__name__)


def parse_decimal(value: Any, default: float = 0.0) -> float:
    """
    Parses a broker number cell.
    Quotes and surrounding whitespace are stripped and a decimal comma
    is accepted, e.g. '"1,25"' -> 1.25. Blank cells yield `default`.
    Returns NaN for text that is not a number.
    """
    if value is None:
        return default
    if isinstance(value, float) and math.isnan(value):
        return default
    if isinstance(value, (int, float)):
        return float(value)

    cleaned = str(value).replace('"', '').strip()
    if not cleaned:
        return default
    cleaned = cleaned.replace(',', '.', 1)
    try:
        return float(cleaned)
    except ValueError:
        return math.nan


def day_identifier(moment: datetime) -> str:
    """Calendar day key (YYYY-MM-DD) of a local timestamp."""
    return f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def to_epoch_ms(moment: datetime) -> int:
    """
    Naive wall-clock datetime -> integer milliseconds, reading the wall
    clock as UTC. Independent of the host time zone, so times inside a
    daylight-saving gap or fold come back unchanged.
    """
    return int(round(moment.replace(tzinfo=timezone.utc).timestamp() * 1000))


def from_epoch_ms(value: int) -> datetime:
    """Inverse of `to_epoch_ms`, exact to the millisecond."""
    seconds, millis = divmod(int(value), 1000)
    return datetime.fromtimestamp(seconds, timezone.utc).replace(tzinfo=None) + timedelta(milliseconds=millis)


def local_from_unix_ms(value: int) -> datetime:
    """Real Unix epoch milliseconds (version 1 payloads) -> local naive datetime."""
    seconds, millis = divmod(int(value), 1000)
    return datetime.fromtimestamp(seconds) + timedelta(milliseconds=millis)
