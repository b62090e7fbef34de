"""Filename, timestamp and delay helpers"""

import asyncio
import random
import re
from datetime import datetime
from typing import Optional

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-z0-9 _-]", re.IGNORECASE)


def sanitize_filename(name: Optional[str]) -> str:
    """Replace any character that is not accepted in filenames with an underscore"""
    return _UNSAFE_FILENAME_CHARS.sub("_", name or "unnamed")[:100]


def format_date_for_filename(date: datetime) -> str:
    """Sortable, filesystem safe representation of a date, e.g. 2024-05-01_13-45-09"""
    return date.strftime("%Y-%m-%d_%H-%M-%S")


def bucket_name(timestamp: Optional[float]) -> str:
    """Directory name for an item captured at a unix timestamp (now when unknown)"""
    if timestamp is None:
        return format_date_for_filename(datetime.now())
    return format_date_for_filename(datetime.fromtimestamp(timestamp))


async def wait_ms(ms: int, randomness: int = 0) -> None:
    """Sleep for ms milliseconds plus up to randomness extra milliseconds"""
    extra = random.randint(0, randomness) if randomness > 0 else 0
    await asyncio.sleep((ms + extra) / 1000)
