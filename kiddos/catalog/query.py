"""Read path over the cached catalog."""

import logging
import math
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from kiddos.cache.coordinator import RefreshCoordinator
from kiddos.cache.freshness import cache_age_minutes, is_stale
from kiddos.catalog.models import PageMeta, VideoItem, VideoPage, VideoQuery
from kiddos.db import crud
from kiddos.db.models import utcnow
from kiddos.db.session import CACHE_DURATION_KEY
from kiddos.youtube.duration import format_duration

logger = logging.getLogger(__name__)


class CatalogQueryService:
    """Lists cached videos and keeps the cache warm as a side effect.

    A listing never waits on the provider. When the least recently fetched
    channel is older than the TTL, a background refresh of the whole
    catalog is started and the current (stale) rows are returned at once.
    """

    def __init__(
        self,
        coordinator: RefreshCoordinator,
        *,
        min_duration_seconds: int = 600,
        default_ttl_minutes: int = 60,
        page_size_default: int = 12,
        page_size_max: int = 50,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._coordinator = coordinator
        self._min_duration_seconds = min_duration_seconds
        self._default_ttl_minutes = default_ttl_minutes
        self._page_size_default = page_size_default
        self._page_size_max = page_size_max
        self._clock = clock

    async def list(self, db: AsyncSession, query: VideoQuery) -> VideoPage:
        """Return one page of videos with freshness metadata.

        Args:
            db: Database session
            query: Filters, sort order and page; a missing limit takes the
                default page size and a larger one is capped at the maximum

        Returns:
            VideoPage with the videos and a PageMeta
        """
        limit = min(query.limit or self._page_size_default, self._page_size_max)
        offset = (query.page - 1) * limit
        rows, total = await crud.search_videos(
            db,
            min_duration_seconds=self._min_duration_seconds,
            channel_id=query.channel_id,
            search=query.search,
            sort=query.sort,
            offset=offset,
            limit=limit,
        )

        oldest_age, stale = await self._freshness(db)
        refreshing = await self._coordinator.is_refreshing()

        if stale and not refreshing:
            self._coordinator.trigger_background_refresh()
            refreshing = True

        videos = [
            VideoItem(
                id=video.id,
                channel_id=video.channel_id,
                channel_name=channel_name,
                channel_thumbnail=channel_thumbnail,
                title=video.title,
                description=video.description,
                thumbnail_url=video.thumbnail_url,
                published_at=video.published_at,
                view_count=video.view_count,
                like_count=video.like_count,
                duration=video.duration,
                duration_formatted=format_duration(video.duration),
            )
            for video, channel_name, channel_thumbnail in rows
        ]

        return VideoPage(
            videos=videos,
            meta=PageMeta(
                page=query.page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit),
                has_more=offset + len(videos) < total,
                oldest_cache_age=oldest_age,
                cache_stale=stale,
                refreshing=refreshing,
            ),
        )

    async def _freshness(self, db: AsyncSession) -> tuple[int, bool]:
        """Age in minutes of the least fresh channel, and whether it is stale."""
        channels, fetched, oldest = await crud.get_catalog_freshness(db)
        ttl = await crud.get_int_setting(db, CACHE_DURATION_KEY, self._default_ttl_minutes)
        now = self._clock()

        if channels == 0:
            return 0, False

        # A channel without a cache entry has never been fetched
        last_fetched = oldest if fetched == channels else None
        return cache_age_minutes(oldest, now), is_stale(last_fetched, ttl, now)
