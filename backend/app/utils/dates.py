"""Date formatting helpers."""

from datetime import datetime

BUDDHIST_ERA_OFFSET = 543


def format_thai_datetime(value: datetime) -> str:
    """Format like the th-TH locale: 17/10/2569 14:03:00 (Buddhist year)."""
    return (
        f"{value.day}/{value.month}/{value.year + BUDDHIST_ERA_OFFSET} "
        f"{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
