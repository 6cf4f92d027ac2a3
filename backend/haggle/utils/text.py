"""
Text and time helpers.

WHAT: Duration rendering and clock helpers shared by deal records and results
WHY: Deal records and round summaries display durations the same way everywhere
HOW: Integer arithmetic over whole seconds, naive UTC timestamps
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage format of every timestamp column)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def elapsed_seconds(started_at: datetime, ended_at: datetime) -> int:
    """Whole seconds between two timestamps, never negative."""
    return max(0, round((ended_at - started_at).total_seconds()))


def format_duration(seconds: int) -> str:
    """
    Render a duration in whole seconds.
    
    Examples:
        >>> format_duration(45)
        '45s'
        >>> format_duration(125)
        '2m 5s'
        >>> format_duration(3725)
        '1h 2m 5s'
    """
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    return f"{hours}h {minutes}m {seconds % 60}s"
