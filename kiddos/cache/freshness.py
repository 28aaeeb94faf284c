"""Freshness policy for cached channel videos."""

from datetime import datetime, timedelta, timezone


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def is_stale(last_fetched: datetime | None, ttl_minutes: int, now: datetime) -> bool:
    """Decide whether a cache entry needs refreshing.

    Args:
        last_fetched: When the entry was last fetched, None if never
        ttl_minutes: Cache duration in minutes; zero or less means always stale
        now: Current time

    Returns:
        True if the entry is missing, the TTL is not positive, or more than
        ttl_minutes have passed since last_fetched
    """
    if last_fetched is None or ttl_minutes <= 0:
        return True
    return _naive_utc(now) - _naive_utc(last_fetched) > timedelta(minutes=ttl_minutes)


def cache_age_minutes(last_fetched: datetime | None, now: datetime) -> int:
    """Whole minutes since last_fetched (0 if never fetched or in the future)."""
    if last_fetched is None:
        return 0
    elapsed = _naive_utc(now) - _naive_utc(last_fetched)
    return max(int(elapsed.total_seconds() // 60), 0)
