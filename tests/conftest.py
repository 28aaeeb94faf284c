"""Shared fixtures for catalog tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from kiddos.config import Settings
from kiddos.db import crud
from kiddos.db.session import create_engine_for, init_db
from kiddos.youtube.client import YouTubeClient
from kiddos.youtube.models import ChannelInfo, VideoInfo


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a file-backed SQLite database so sessions get separate connections."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    await init_db(engine, Settings(jwt_secret="test-secret"))  # type: ignore[call-arg]

    yield engine

    await engine.dispose()


@pytest.fixture
def sessionmaker(db_engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
def make_video():
    """Factory for provider video records."""

    def _make(
        video_id: str,
        *,
        title: str | None = None,
        description: str = "",
        published_at: datetime | None = None,
        view_count: int = 0,
        duration: str = "PT15M",
    ) -> VideoInfo:
        return VideoInfo(
            id=video_id,
            title=title or f"Video {video_id}",
            description=description,
            thumbnail_url=f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg",
            published_at=published_at or datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
            view_count=view_count,
            like_count=0,
            duration=duration,
        )

    return _make


@pytest.fixture
def add_channel(sessionmaker):
    """Factory inserting a catalog channel whose playlist id is '<id>-uploads'."""

    async def _add(channel_id: str, name: str | None = None):
        async with sessionmaker() as db:
            return await crud.create_channel(
                db,
                ChannelInfo(
                    id=channel_id,
                    name=name or f"Channel {channel_id}",
                    thumbnail_url=f"https://yt3.ggpht.com/{channel_id}.jpg",
                    uploads_playlist_id=f"{channel_id}-uploads",
                ),
            )

    return _add


@pytest.fixture
def provider():
    """Mock YouTube client; tests set fetch_videos results per playlist."""
    client = AsyncMock(spec=YouTubeClient)
    client.videos_by_playlist = {}

    async def _fetch_videos(playlist_id: str, max_results: int = 50):
        result = client.videos_by_playlist.get(playlist_id, [])
        if isinstance(result, BaseException):
            raise result
        return list(result)

    client.fetch_videos.side_effect = _fetch_videos
    return client


@pytest.fixture
def minutes_ago():
    """Naive UTC timestamp a number of minutes in the past."""

    def _ago(minutes: float) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(minutes=minutes)

    return _ago
