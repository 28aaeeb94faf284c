"""Channel management endpoints for the Kiddos catalog API."""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import Field
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kiddos.api.dependencies import get_provider, get_syncer
from kiddos.auth.security import require_admin
from kiddos.cache.syncer import ChannelSyncer
from kiddos.catalog.models import CamelModel
from kiddos.db import crud
from kiddos.db.models import CacheEntry, Channel
from kiddos.db.session import get_session
from kiddos.errors import CatalogError, ChannelExists, ChannelNotFound
from kiddos.youtube.client import YouTubeClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/channels", tags=["channels"])
limiter = Limiter(key_func=get_remote_address)


class ChannelOut(CamelModel):
    """A catalog channel with the state of its cache."""

    id: str
    name: str
    custom_url: str | None = None
    thumbnail_url: str | None = None
    description: str | None = None
    subscriber_count: int
    video_count: int
    uploads_playlist_id: str
    added_at: datetime | None = None
    updated_at: datetime | None = None
    last_fetched_at: datetime | None = None
    fetch_error: str | None = None

    @classmethod
    def build(cls, channel: Channel, entry: CacheEntry | None = None) -> "ChannelOut":
        return cls(
            id=channel.id,
            name=channel.name,
            custom_url=channel.custom_url,
            thumbnail_url=channel.thumbnail_url,
            description=channel.description,
            subscriber_count=channel.subscriber_count,
            video_count=channel.video_count,
            uploads_playlist_id=channel.uploads_playlist_id,
            added_at=channel.added_at,
            updated_at=channel.updated_at,
            last_fetched_at=entry.last_fetched if entry else None,
            fetch_error=entry.fetch_error if entry else None,
        )


class AddChannelRequest(CamelModel):
    channel_input: str = Field(min_length=1, max_length=500)


class ChannelSyncResponse(CamelModel):
    channel: ChannelOut
    videos_fetched: int


@router.get("")
@limiter.limit("60/minute")
async def list_channels(request: Request, db: AsyncSession = Depends(get_session)):
    """
    List catalog channels, most recently added first.

    Returns:
        Channels with lastFetchedAt and fetchError from their cache entry
    """
    rows = await crud.list_channels_with_cache(db)
    channels = [ChannelOut.build(channel, entry) for channel, entry in rows]
    return {
        "channels": [c.model_dump(mode="json", by_alias=True) for c in channels],
        "meta": {"total": len(channels)},
    }


@router.post("", response_model=ChannelSyncResponse)
@limiter.limit("20/minute")
async def add_channel(
    request: Request,
    body: AddChannelRequest,
    admin: dict[str, Any] = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    provider: YouTubeClient = Depends(get_provider),
    syncer: ChannelSyncer = Depends(get_syncer),
):
    """
    Add a channel by id, @handle or URL and fetch its first videos.

    A failed initial fetch is recorded on the channel's cache entry but
    does not undo the addition.

    Returns:
        The stored channel and the number of videos fetched
    """
    info = await provider.fetch_channel_info(body.channel_input)

    if await crud.get_channel(db, info.id):
        raise ChannelExists()

    try:
        channel = await crud.create_channel(db, info)
    except IntegrityError:
        await db.rollback()
        raise ChannelExists()

    logger.info(f"Channel {channel.id} ({channel.name}) added by {admin.get('sub')}")

    videos_fetched = 0
    try:
        videos_fetched = await syncer.sync(channel.id)
    except CatalogError as exc:
        logger.warning(f"Initial fetch failed for channel {channel.id}: {exc.message}")

    return ChannelSyncResponse(
        channel=ChannelOut.build(channel), videos_fetched=videos_fetched
    )


@router.delete("/{channel_id}")
@limiter.limit("20/minute")
async def delete_channel(
    request: Request,
    channel_id: str,
    admin: dict[str, Any] = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """
    Remove a channel together with its cached videos and cache entry.

    Returns:
        {"ok": True} on success, 404 if the channel does not exist
    """
    deleted = await crud.delete_channel(db, channel_id)
    if not deleted:
        raise ChannelNotFound()

    logger.info(f"Channel {channel_id} deleted by {admin.get('sub')}")
    return {"ok": True}


@router.put("/{channel_id}/refresh", response_model=ChannelSyncResponse)
@limiter.limit("20/minute")
async def refresh_channel(
    request: Request,
    channel_id: str,
    admin: dict[str, Any] = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    syncer: ChannelSyncer = Depends(get_syncer),
):
    """
    Refresh one channel's videos immediately.

    Provider failures are returned as errors (503 for quota, 502 otherwise)
    after being recorded on the cache entry.

    Returns:
        The channel and the number of videos now cached
    """
    channel = await crud.get_channel(db, channel_id)
    if channel is None:
        raise ChannelNotFound()

    videos_fetched = await syncer.sync(channel_id)

    entry = await crud.get_cache_entry(db, channel_id)
    return ChannelSyncResponse(
        channel=ChannelOut.build(channel, entry), videos_fetched=videos_fetched
    )
