#!/usr/bin/env python3
"""
Timezone helpers.

All timestamps are stored as timezone-aware UTC datetimes. Feed dates arrive
in every format imaginable, so parsing goes through dateutil.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

import pytz
from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

DISPLAY_TZ = pytz.timezone('Europe/Amsterdam')

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(pytz.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a datetime from a string, datetime or None.

    Args:
        value: ISO string, RFC 822 string, datetime or None

    Returns:
        Aware UTC datetime, or None if the value cannot be parsed
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        return ensure_utc(date_parser.parse(str(value)))
    except (ValueError, OverflowError) as e:
        logger.debug(f"Failed to parse date '{value}': {e}")
        return None


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    """Serialize an optional datetime."""
    return dt.isoformat() if dt else None


def to_display(dt: Optional[datetime]) -> str:
    """Format a timestamp in the newsroom's local timezone."""
    if dt is None:
        return '-'
    return ensure_utc(dt).astimezone(DISPLAY_TZ).strftime('%Y-%m-%d %H:%M')
