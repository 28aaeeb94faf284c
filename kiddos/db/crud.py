"""CRUD utilities for the catalog store."""

import uuid
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kiddos.db.models import CachedVideo, CacheEntry, Channel, Setting, utcnow
from kiddos.db.session import REFRESH_IN_PROGRESS_KEY
from kiddos.youtube.duration import parse_duration
from kiddos.youtube.models import ChannelInfo, VideoInfo

SORT_ORDERS = {
    "newest": CachedVideo.published_at.desc(),
    "oldest": CachedVideo.published_at.asc(),
    "popular": CachedVideo.view_count.desc(),
}


def _naive_utc(value: datetime) -> datetime:
    """Drop tzinfo after converting to UTC; SQLite stores naive datetimes."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# Channels


async def get_channel(db: AsyncSession, channel_id: str) -> Channel | None:
    """Get a channel by its YouTube channel ID."""
    return await db.get(Channel, channel_id)


async def list_channel_ids(db: AsyncSession) -> list[str]:
    """List the IDs of every channel in the catalog."""
    result = await db.execute(select(Channel.id).order_by(Channel.added_at))
    return list(result.scalars().all())


async def list_channels_with_cache(
    db: AsyncSession,
) -> list[tuple[Channel, CacheEntry | None]]:
    """List channels, newest first, with their cache entry if one exists."""
    result = await db.execute(
        select(Channel, CacheEntry)
        .outerjoin(CacheEntry, CacheEntry.channel_id == Channel.id)
        .order_by(Channel.added_at.desc())
    )
    return [(row[0], row[1]) for row in result.all()]


async def create_channel(db: AsyncSession, info: ChannelInfo) -> Channel:
    """Insert a channel resolved from the YouTube API."""
    channel = Channel(
        id=info.id,
        name=info.name,
        custom_url=info.custom_url,
        thumbnail_url=info.thumbnail_url,
        description=info.description,
        subscriber_count=info.subscriber_count,
        video_count=info.video_count,
        uploads_playlist_id=info.uploads_playlist_id,
    )
    db.add(channel)
    await db.commit()
    await db.refresh(channel)
    return channel


async def delete_channel(db: AsyncSession, channel_id: str) -> bool:
    """Delete a channel.

    This will cascade delete its cached videos and cache entry
    (via ondelete="CASCADE").

    Returns:
        True if the channel was deleted, False if it wasn't found
    """
    result = await db.execute(delete(Channel).where(Channel.id == channel_id))
    await db.commit()
    return result.rowcount > 0


# Cached videos and cache entries


async def get_cache_entry(db: AsyncSession, channel_id: str) -> CacheEntry | None:
    """Get the freshness metadata for a channel."""
    return await db.get(CacheEntry, channel_id)


async def list_channel_videos(db: AsyncSession, channel_id: str) -> list[CachedVideo]:
    """List a channel's cached videos, newest first."""
    result = await db.execute(
        select(CachedVideo)
        .where(CachedVideo.channel_id == channel_id)
        .order_by(CachedVideo.published_at.desc())
    )
    return list(result.scalars().all())


async def _upsert_cache_entry(
    db: AsyncSession,
    channel_id: str,
    fetched_at: datetime,
    fetch_error: str | None,
    total_results: int | None = None,
) -> CacheEntry:
    entry = await db.get(CacheEntry, channel_id)
    if entry is None:
        entry = CacheEntry(channel_id=channel_id, last_fetched=fetched_at)
        db.add(entry)
    entry.last_fetched = fetched_at
    entry.fetch_error = fetch_error
    if total_results is not None:
        entry.total_results = total_results
    return entry


async def replace_channel_videos(
    db: AsyncSession,
    channel_id: str,
    videos: Sequence[VideoInfo],
    fetched_at: datetime,
) -> int:
    """Replace a channel's cached videos with a freshly fetched set.

    The delete, the inserts and the cache entry update are committed as one
    transaction, so readers see either the previous set or the new one.

    Returns:
        Number of videos stored
    """
    rows: dict[str, CachedVideo] = {}
    for video in videos:
        if video.id in rows:
            continue
        rows[video.id] = CachedVideo(
            id=video.id,
            channel_id=channel_id,
            title=video.title,
            description=video.description,
            thumbnail_url=video.thumbnail_url,
            published_at=_naive_utc(video.published_at),
            view_count=video.view_count,
            like_count=video.like_count,
            duration=video.duration,
            duration_seconds=parse_duration(video.duration),
            cached_at=fetched_at,
        )

    try:
        # Video ids are global; never take over rows owned by another channel
        if rows:
            taken = await db.execute(
                select(CachedVideo.id).where(
                    CachedVideo.id.in_(list(rows)),
                    CachedVideo.channel_id != channel_id,
                )
            )
            for video_id in taken.scalars().all():
                del rows[video_id]

        await db.execute(delete(CachedVideo).where(CachedVideo.channel_id == channel_id))
        db.add_all(rows.values())
        await _upsert_cache_entry(
            db, channel_id, fetched_at, fetch_error=None, total_results=len(rows)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return len(rows)


async def record_fetch_failure(
    db: AsyncSession, channel_id: str, message: str, fetched_at: datetime
) -> CacheEntry:
    """Record a failed fetch without touching the channel's cached videos."""
    entry = await _upsert_cache_entry(db, channel_id, fetched_at, fetch_error=message)
    await db.commit()
    return entry


async def get_catalog_freshness(db: AsyncSession) -> tuple[int, int, datetime | None]:
    """Summarize cache freshness across the catalog.

    Returns:
        Tuple of (channel count, channels with a cache entry,
        oldest last_fetched among those entries)
    """
    result = await db.execute(
        select(
            func.count(Channel.id),
            func.count(CacheEntry.channel_id),
            func.min(CacheEntry.last_fetched),
        ).outerjoin(CacheEntry, CacheEntry.channel_id == Channel.id)
    )
    channels, fetched, oldest = result.one()
    return channels, fetched, oldest


async def search_videos(
    db: AsyncSession,
    *,
    min_duration_seconds: int,
    channel_id: str | None = None,
    search: str | None = None,
    sort: str = "newest",
    offset: int = 0,
    limit: int = 12,
) -> tuple[list[tuple[CachedVideo, str, str | None]], int]:
    """Filter, sort and page the cached videos.

    Returns:
        Tuple of (rows of (video, channel name, channel thumbnail), total
        number of matching videos)
    """
    conditions = [CachedVideo.duration_seconds >= min_duration_seconds]
    if channel_id:
        conditions.append(CachedVideo.channel_id == channel_id)
    if search:
        conditions.append(
            or_(
                CachedVideo.title.icontains(search, autoescape=True),
                CachedVideo.description.icontains(search, autoescape=True),
            )
        )

    total = await db.scalar(
        select(func.count()).select_from(CachedVideo).where(*conditions)
    )

    result = await db.execute(
        select(CachedVideo, Channel.name, Channel.thumbnail_url)
        .join(Channel, CachedVideo.channel_id == Channel.id)
        .where(*conditions)
        .order_by(SORT_ORDERS.get(sort, SORT_ORDERS["newest"]))
        .offset(offset)
        .limit(limit)
    )
    rows = [(row[0], row[1], row[2]) for row in result.all()]
    return rows, total or 0


# Settings


async def get_setting(db: AsyncSession, key: str) -> str | None:
    """Get a raw setting value."""
    setting = await db.get(Setting, key)
    return setting.value if setting else None


async def get_int_setting(db: AsyncSession, key: str, default: int) -> int:
    """Get a setting as an integer, falling back to default if unreadable."""
    value = await get_setting(db, key)
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


async def set_setting(db: AsyncSession, key: str, value: str) -> Setting:
    """Create or update a setting."""
    setting = await db.get(Setting, key)
    if setting:
        setting.value = value
        setting.updated_at = utcnow()
    else:
        setting = Setting(key=key, value=value, updated_at=utcnow())
        db.add(setting)
    await db.commit()
    return setting


# Refresh lease
#
# The refresh_in_progress setting holds "false" when free, otherwise the
# token of the holder. updated_at is the last acquisition or renewal.

LEASE_FREE = "false"


async def try_acquire_refresh_lease(
    db: AsyncSession, now: datetime, max_age: timedelta
) -> str | None:
    """Atomically take the refresh lease if it is free or abandoned.

    A single conditional UPDATE does the check and the write, so two
    callers can never both acquire. A lease not renewed for longer than
    max_age counts as abandoned and may be taken over.

    Returns:
        The owner token to renew and release the lease with, or None if
        another caller holds it
    """
    token = uuid.uuid4().hex
    result = await db.execute(
        update(Setting)
        .where(
            Setting.key == REFRESH_IN_PROGRESS_KEY,
            or_(Setting.value == LEASE_FREE, Setting.updated_at < now - max_age),
        )
        .values(value=token, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount == 1:
        return token

    # Settings not seeded yet; the primary key arbitrates concurrent inserts
    if await db.get(Setting, REFRESH_IN_PROGRESS_KEY) is None:
        db.add(Setting(key=REFRESH_IN_PROGRESS_KEY, value=token, updated_at=now))
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            return None
        return token

    return None


async def renew_refresh_lease(db: AsyncSession, token: str, now: datetime) -> bool:
    """Push the lease's updated_at forward while its holder is still working.

    Returns:
        False if the lease no longer belongs to token
    """
    result = await db.execute(
        update(Setting)
        .where(Setting.key == REFRESH_IN_PROGRESS_KEY, Setting.value == token)
        .values(updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def release_refresh_lease(db: AsyncSession, token: str) -> bool:
    """Free the lease if token still holds it.

    A holder whose lease was taken over leaves the new holder's lease alone.

    Returns:
        True if the lease was released
    """
    result = await db.execute(
        update(Setting)
        .where(Setting.key == REFRESH_IN_PROGRESS_KEY, Setting.value == token)
        .values(value=LEASE_FREE, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def is_refresh_in_progress(
    db: AsyncSession, now: datetime, max_age: timedelta
) -> bool:
    """Check whether a live (non-abandoned) refresh lease is held."""
    result = await db.execute(
        select(Setting.value, Setting.updated_at).where(
            Setting.key == REFRESH_IN_PROGRESS_KEY
        )
    )
    row = result.one_or_none()
    if row is None or row.value == LEASE_FREE:
        return False
    return row.updated_at is None or row.updated_at >= now - max_age
