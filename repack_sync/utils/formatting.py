"""
Helper functions for formatting data into human-readable strings.
"""

from datetime import datetime


def format_timestamp(value: datetime | None) -> str:
    """Formats a timestamp for table output (e.g., '2024-01-01 12:30')."""
    if value is None:
        return "-"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def format_object_ids(object_ids: list[str], limit: int = 5) -> str:
    """Joins matched catalog ids, truncating long lists (e.g., '1, 2, 3 (+4 more)')."""
    if not object_ids:
        return "-"
    shown = ", ".join(object_ids[:limit])
    if len(object_ids) > limit:
        shown += f" (+{len(object_ids) - limit} more)"
    return shown


def truncate(text: str, width: int = 60) -> str:
    """Shortens text to a maximum width, adding an ellipsis if needed."""
    if len(text) <= width:
        return text
    return text[: width - 1] + "…"
