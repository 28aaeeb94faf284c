"""Refresh of a single channel's cached videos."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kiddos.db import crud
from kiddos.db.models import utcnow
from kiddos.db.session import VIDEOS_PER_CHANNEL_KEY
from kiddos.errors import CatalogError, ChannelNotFound, UpstreamError
from kiddos.youtube.client import MAX_RESULTS_LIMIT, YouTubeClient

logger = logging.getLogger(__name__)


class ChannelSyncer:
    """Fetches one channel's uploads and replaces its cached videos.

    On success the channel's rows are swapped for the new set in one
    transaction. On failure the rows are left alone and the error is written
    to the channel's cache entry. Both outcomes advance last_fetched, so a
    failing channel is not retried until its TTL runs out again.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        provider: YouTubeClient,
        *,
        fetch_timeout: float = 60.0,
        default_max_results: int = MAX_RESULTS_LIMIT,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._sessionmaker = sessionmaker
        self._provider = provider
        self._fetch_timeout = fetch_timeout
        self._default_max_results = default_max_results
        self._clock = clock

    async def sync(self, channel_id: str) -> int:
        """Refresh a channel's cached videos.

        Args:
            channel_id: YouTube channel ID of a catalog channel

        Returns:
            Number of videos now cached for the channel

        Raises:
            ChannelNotFound: If the channel is not in the catalog
            QuotaExceeded: If the provider reports quota exhaustion
            UpstreamError: For any other provider failure, including timeouts
        """
        async with self._sessionmaker() as db:
            channel = await crud.get_channel(db, channel_id)
            if channel is None:
                raise ChannelNotFound(f"Channel not found: {channel_id}")
            playlist_id = channel.uploads_playlist_id
            max_results = await crud.get_int_setting(
                db, VIDEOS_PER_CHANNEL_KEY, self._default_max_results
            )

        try:
            videos = await asyncio.wait_for(
                self._provider.fetch_videos(playlist_id, max_results),
                timeout=self._fetch_timeout,
            )
        except asyncio.TimeoutError as exc:
            error = UpstreamError(
                f"Timed out after {self._fetch_timeout:g}s fetching videos"
            )
            await self._record_failure(channel_id, error)
            raise error from exc
        except CatalogError as exc:
            await self._record_failure(channel_id, exc)
            raise
        except Exception as exc:
            error = UpstreamError(str(exc) or exc.__class__.__name__)
            await self._record_failure(channel_id, error)
            raise error from exc

        async with self._sessionmaker() as db:
            count = await crud.replace_channel_videos(
                db, channel_id, videos, self._clock()
            )

        logger.info(
            f"Synced channel {channel_id}: {count} videos cached",
            extra={"channel_id": channel_id, "videos": count},
        )
        return count

    async def _record_failure(self, channel_id: str, error: CatalogError) -> None:
        logger.warning(
            f"Sync failed for channel {channel_id}: {error.message}",
            extra={"channel_id": channel_id, "error_code": error.code},
        )
        try:
            async with self._sessionmaker() as db:
                await crud.record_fetch_failure(
                    db, channel_id, error.message, self._clock()
                )
        except Exception:
            # The original provider error is what the caller needs to see
            logger.error(
                f"Could not record fetch error for channel {channel_id}",
                exc_info=True,
            )
