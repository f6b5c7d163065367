"""
Formatting utilities for the NAS App Orchestrator.
"""

from datetime import datetime
from typing import Optional


def parse_time(timestamp: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as written by the task store."""
    if not timestamp:
        return None
    return datetime.fromisoformat(timestamp.replace('Z', '+00:00'))


def format_time(timestamp: Optional[str]) -> str:
    """
    Format an ISO-8601 timestamp as a human-readable local time string.

    Args:
        timestamp: ISO timestamp, or None

    Returns:
        str: Formatted time string, or empty string if timestamp is None
    """
    parsed = parse_time(timestamp)
    if parsed is None:
        return ""

    return parsed.astimezone().strftime('%Y-%m-%d %H:%M:%S')


def format_duration(seconds: float) -> str:
    """
    Format a duration in seconds as a human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        str: Formatted duration string
    """
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes, seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{int(minutes)}m {int(seconds)}s"

    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{int(hours)}h {int(minutes)}m"

    days, hours = divmod(hours, 24)
    return f"{int(days)}d {int(hours)}h"


def task_duration(task: dict) -> str:
    """Elapsed time of a task dict, up to now for unfinished tasks."""
    started = parse_time(task.get('created_at'))
    if started is None:
        return ""
    finished = parse_time(task.get('finished_at')) or datetime.now(started.tzinfo)
    return format_duration(max(0.0, (finished - started).total_seconds()))
