"""Tests for database models and catalog CRUD operations."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from kiddos.db import crud
from kiddos.db.models import CachedVideo, CacheEntry, Setting, utcnow
from kiddos.db.session import (
    CACHE_DURATION_KEY,
    REFRESH_IN_PROGRESS_KEY,
    VIDEOS_PER_CHANNEL_KEY,
    init_db,
)
from kiddos.config import Settings

LEASE_MAX_AGE = timedelta(minutes=30)


@pytest.mark.asyncio
async def test_init_db_seeds_default_settings(sessionmaker):
    """Test startup seeds the cache settings."""
    async with sessionmaker() as db:
        assert await crud.get_setting(db, CACHE_DURATION_KEY) == "60"
        assert await crud.get_setting(db, VIDEOS_PER_CHANNEL_KEY) == "50"
        assert await crud.get_setting(db, REFRESH_IN_PROGRESS_KEY) == "false"


@pytest.mark.asyncio
async def test_init_db_keeps_existing_settings(db_engine, sessionmaker):
    """Test running init_db again does not overwrite changed settings."""
    async with sessionmaker() as db:
        await crud.set_setting(db, CACHE_DURATION_KEY, "15")

    await init_db(db_engine, Settings(jwt_secret="test-secret"))  # type: ignore[call-arg]

    async with sessionmaker() as db:
        assert await crud.get_setting(db, CACHE_DURATION_KEY) == "15"


@pytest.mark.asyncio
async def test_get_int_setting_falls_back_on_bad_value(sessionmaker):
    """Test unreadable integer settings fall back to the default."""
    async with sessionmaker() as db:
        await crud.set_setting(db, CACHE_DURATION_KEY, "sixty")
        assert await crud.get_int_setting(db, CACHE_DURATION_KEY, 60) == 60
        assert await crud.get_int_setting(db, "missing_key", 7) == 7


@pytest.mark.asyncio
async def test_create_and_list_channels(sessionmaker, add_channel):
    """Test channels are listed newest first with their cache entry."""
    await add_channel("UC_first")
    await add_channel("UC_second")

    async with sessionmaker() as db:
        await crud.record_fetch_failure(db, "UC_first", "boom", utcnow())
        rows = await crud.list_channels_with_cache(db)
        ids = await crud.list_channel_ids(db)

    assert [channel.id for channel, _ in rows] == ["UC_second", "UC_first"]
    assert rows[0][1] is None
    assert rows[1][1].fetch_error == "boom"
    assert set(ids) == {"UC_first", "UC_second"}


@pytest.mark.asyncio
async def test_delete_channel_cascades(sessionmaker, add_channel, make_video):
    """Test deleting a channel removes its videos and cache entry."""
    await add_channel("UC_gone")
    async with sessionmaker() as db:
        await crud.replace_channel_videos(
            db, "UC_gone", [make_video("v1"), make_video("v2")], utcnow()
        )

    async with sessionmaker() as db:
        assert await crud.delete_channel(db, "UC_gone") is True
        assert await crud.delete_channel(db, "UC_gone") is False

    async with sessionmaker() as db:
        videos = (await db.execute(select(CachedVideo))).scalars().all()
        entries = (await db.execute(select(CacheEntry))).scalars().all()
    assert videos == []
    assert entries == []


@pytest.mark.asyncio
async def test_replace_channel_videos_replaces_whole_set(sessionmaker, add_channel, make_video):
    """Test a second replace leaves exactly the new set."""
    await add_channel("UC_a")
    async with sessionmaker() as db:
        await crud.replace_channel_videos(
            db, "UC_a", [make_video("old1"), make_video("shared")], utcnow()
        )
    async with sessionmaker() as db:
        count = await crud.replace_channel_videos(
            db, "UC_a", [make_video("shared"), make_video("new1"), make_video("new1")], utcnow()
        )

    async with sessionmaker() as db:
        videos = await crud.list_channel_videos(db, "UC_a")
        entry = await crud.get_cache_entry(db, "UC_a")

    assert count == 2
    assert {v.id for v in videos} == {"shared", "new1"}
    assert entry.total_results == 2
    assert entry.fetch_error is None


@pytest.mark.asyncio
async def test_replace_stores_duration_seconds_and_naive_utc(sessionmaker, add_channel, make_video):
    """Test ISO durations are kept verbatim alongside derived seconds."""
    await add_channel("UC_a")
    async with sessionmaker() as db:
        await crud.replace_channel_videos(
            db, "UC_a", [make_video("v1", duration="PT1H2M3S")], utcnow()
        )
        video = (await crud.list_channel_videos(db, "UC_a"))[0]

    assert video.duration == "PT1H2M3S"
    assert video.duration_seconds == 3723
    assert video.published_at.tzinfo is None
    assert video.published_at.hour == 10


@pytest.mark.asyncio
async def test_replace_skips_videos_owned_by_other_channel(sessionmaker, add_channel, make_video):
    """Test a video id already cached for another channel is not taken over."""
    await add_channel("UC_a")
    await add_channel("UC_b")
    async with sessionmaker() as db:
        await crud.replace_channel_videos(db, "UC_a", [make_video("dup")], utcnow())
    async with sessionmaker() as db:
        count = await crud.replace_channel_videos(
            db, "UC_b", [make_video("dup"), make_video("b1")], utcnow()
        )
        a_videos = await crud.list_channel_videos(db, "UC_a")

    assert count == 1
    assert [v.id for v in a_videos] == ["dup"]


@pytest.mark.asyncio
async def test_record_fetch_failure_keeps_total_results(sessionmaker, add_channel, make_video):
    """Test a failure updates error and timestamp but keeps the previous count."""
    await add_channel("UC_a")
    earlier = utcnow() - timedelta(hours=2)
    async with sessionmaker() as db:
        await crud.replace_channel_videos(db, "UC_a", [make_video("v1")], earlier)

    now = utcnow()
    async with sessionmaker() as db:
        await crud.record_fetch_failure(db, "UC_a", "quota", now)

    async with sessionmaker() as db:
        entry = await crud.get_cache_entry(db, "UC_a")
    assert entry.fetch_error == "quota"
    assert entry.last_fetched == now
    assert entry.total_results == 1


@pytest.mark.asyncio
async def test_catalog_freshness(sessionmaker, add_channel, minutes_ago):
    """Test freshness summary counts channels, entries and the oldest fetch."""
    async with sessionmaker() as db:
        assert await crud.get_catalog_freshness(db) == (0, 0, None)

    await add_channel("UC_a")
    await add_channel("UC_b")
    await add_channel("UC_c")
    oldest = minutes_ago(90)
    async with sessionmaker() as db:
        await crud.record_fetch_failure(db, "UC_a", "x", oldest)
        await crud.record_fetch_failure(db, "UC_b", "y", minutes_ago(5))
        channels, fetched, oldest_fetch = await crud.get_catalog_freshness(db)

    assert channels == 3
    assert fetched == 2
    assert oldest_fetch == oldest


@pytest.mark.asyncio
async def test_refresh_lease_is_exclusive(sessionmaker):
    """Test only one caller can hold the lease until it is released."""
    now = utcnow()
    async with sessionmaker() as db:
        token = await crud.try_acquire_refresh_lease(db, now, LEASE_MAX_AGE)
        assert token is not None
        assert await crud.try_acquire_refresh_lease(db, now, LEASE_MAX_AGE) is None
        assert await crud.is_refresh_in_progress(db, now, LEASE_MAX_AGE) is True

        assert await crud.release_refresh_lease(db, token) is True

        assert await crud.is_refresh_in_progress(db, now, LEASE_MAX_AGE) is False
        assert await crud.get_setting(db, REFRESH_IN_PROGRESS_KEY) == "false"
        assert await crud.try_acquire_refresh_lease(db, now, LEASE_MAX_AGE) is not None


@pytest.mark.asyncio
async def test_abandoned_refresh_lease_can_be_taken_over(sessionmaker):
    """Test a lease older than the maximum age counts as abandoned."""
    acquired_at = utcnow() - timedelta(minutes=45)
    async with sessionmaker() as db:
        assert await crud.try_acquire_refresh_lease(db, acquired_at, LEASE_MAX_AGE)

    now = utcnow()
    async with sessionmaker() as db:
        assert await crud.is_refresh_in_progress(db, now, LEASE_MAX_AGE) is False
        assert await crud.try_acquire_refresh_lease(db, now, LEASE_MAX_AGE) is not None


@pytest.mark.asyncio
async def test_stale_holder_cannot_release_taken_over_lease(sessionmaker):
    """Test releasing with a superseded token leaves the new holder's lease."""
    async with sessionmaker() as db:
        old_token = await crud.try_acquire_refresh_lease(
            db, utcnow() - timedelta(hours=2), LEASE_MAX_AGE
        )
        new_token = await crud.try_acquire_refresh_lease(db, utcnow(), LEASE_MAX_AGE)
    assert old_token and new_token and old_token != new_token

    async with sessionmaker() as db:
        assert await crud.release_refresh_lease(db, old_token) is False
        assert await crud.renew_refresh_lease(db, old_token, utcnow()) is False
        assert await crud.is_refresh_in_progress(db, utcnow(), LEASE_MAX_AGE) is True
        assert await crud.try_acquire_refresh_lease(db, utcnow(), LEASE_MAX_AGE) is None

        assert await crud.release_refresh_lease(db, new_token) is True
        assert await crud.is_refresh_in_progress(db, utcnow(), LEASE_MAX_AGE) is False


@pytest.mark.asyncio
async def test_renewed_lease_is_not_abandoned(sessionmaker):
    """Test renewing moves the lease's age forward."""
    async with sessionmaker() as db:
        token = await crud.try_acquire_refresh_lease(
            db, utcnow() - timedelta(minutes=45), LEASE_MAX_AGE
        )
        assert await crud.is_refresh_in_progress(db, utcnow(), LEASE_MAX_AGE) is False

        assert await crud.renew_refresh_lease(db, token, utcnow()) is True

        assert await crud.is_refresh_in_progress(db, utcnow(), LEASE_MAX_AGE) is True
        assert await crud.try_acquire_refresh_lease(db, utcnow(), LEASE_MAX_AGE) is None


@pytest.mark.asyncio
async def test_refresh_lease_created_when_setting_missing(sessionmaker):
    """Test the lease works even if the settings row was never seeded."""
    async with sessionmaker() as db:
        setting = await db.get(Setting, REFRESH_IN_PROGRESS_KEY)
        await db.delete(setting)
        await db.commit()

    now = utcnow()
    async with sessionmaker() as db:
        assert await crud.try_acquire_refresh_lease(db, now, LEASE_MAX_AGE) is not None
    async with sessionmaker() as db:
        assert await crud.try_acquire_refresh_lease(db, now, LEASE_MAX_AGE) is None
