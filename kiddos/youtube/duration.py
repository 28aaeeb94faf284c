"""Helpers for ISO-8601 video durations (``PT1H2M3S``)."""

import re

_DURATION_RE = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def parse_duration(iso_duration: str | None) -> int:
    """Convert an ISO-8601 duration to seconds.

    Returns 0 for empty or unparseable values, which keeps such videos out
    of listings that apply a minimum duration.
    """
    if not iso_duration:
        return 0
    match = _DURATION_RE.match(iso_duration.strip())
    if not match:
        return 0
    parts = {k: int(v) for k, v in match.groupdict().items() if v}
    return (
        parts.get("days", 0) * 86400
        + parts.get("hours", 0) * 3600
        + parts.get("minutes", 0) * 60
        + parts.get("seconds", 0)
    )


def format_duration(iso_duration: str | None) -> str:
    """Format an ISO-8601 duration as ``H:MM:SS`` or ``M:SS``."""
    total = parse_duration(iso_duration)
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"
