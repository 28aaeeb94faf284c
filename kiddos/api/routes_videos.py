"""Video listing and refresh endpoints for the Kiddos catalog API."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kiddos.api.dependencies import get_coordinator, get_query_service
from kiddos.auth.security import require_user
from kiddos.cache.coordinator import RefreshCoordinator
from kiddos.catalog.models import CamelModel, SortOrder, VideoPage, VideoQuery
from kiddos.catalog.query import CatalogQueryService
from kiddos.config import get_settings
from kiddos.db import crud
from kiddos.db.session import get_session
from kiddos.errors import CatalogError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/videos", tags=["videos"])
limiter = Limiter(key_func=get_remote_address)


class RefreshRequest(CamelModel):
    """Channels to refresh; empty means every channel in the catalog."""

    channel_ids: list[str] = []


class RefreshError(CamelModel):
    channel_id: str
    error: str


class RefreshResponse(CamelModel):
    """Outcome of a manual refresh.

    videos_updated mirrors videos_added: a refresh replaces each channel's
    videos wholesale, so there is no separate update count.
    """

    channels_refreshed: int
    videos_added: int
    videos_updated: int
    errors: list[RefreshError]


@router.get("", response_model=VideoPage)
@limiter.limit("120/minute")
async def list_videos(
    request: Request,
    page: int = Query(default=1, ge=1, description="Page number (1-based)"),
    limit: int | None = Query(
        default=None, ge=1, description="Items per page (defaults to page_size_default)"
    ),
    channel_id: str | None = Query(
        default=None, alias="channelId", description="Filter to single channel"
    ),
    search: str | None = Query(
        default=None, max_length=200, description="Match title or description"
    ),
    sort: SortOrder = Query(default="newest", description="newest, oldest or popular"),
    db: AsyncSession = Depends(get_session),
    service: CatalogQueryService = Depends(get_query_service),
):
    """
    List cached videos with pagination, filtering and sorting.

    Videos shorter than the configured minimum duration are never listed.
    When the cache is stale a background refresh is started; the response
    is served from the current cache either way.

    Returns:
        JSON response with:
            - videos: List of videos on this page
            - meta: Pagination plus oldestCacheAge, cacheStale and refreshing
    """
    max_limit = get_settings().page_size_max
    if limit is not None and limit > max_limit:
        raise RequestValidationError(
            [
                {
                    "type": "less_than_equal",
                    "loc": ("query", "limit"),
                    "msg": f"Input should be less than or equal to {max_limit}",
                    "input": limit,
                    "ctx": {"le": max_limit},
                }
            ]
        )

    query = VideoQuery(
        page=page, limit=limit, channel_id=channel_id, search=search or None, sort=sort
    )
    try:
        return await service.list(db, query)
    except SQLAlchemyError:
        logger.error("Failed to list videos", exc_info=True)
        raise CatalogError("Error fetching videos")


@router.post("/refresh", response_model=RefreshResponse)
@limiter.limit("5/minute")
async def refresh_videos(
    request: Request,
    body: RefreshRequest | None = None,
    user: dict[str, Any] = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    coordinator: RefreshCoordinator = Depends(get_coordinator),
):
    """
    Refresh cached videos now.

    Refreshes the given channels, or every channel when none are given.
    Per-channel failures are listed in `errors` and do not fail the request.
    Responds 409 if a refresh is already running.

    Returns:
        Counts of refreshed channels and videos, plus per-channel errors
    """
    channel_ids = body.channel_ids if body else []
    if not channel_ids:
        channel_ids = await crud.list_channel_ids(db)

    logger.info(f"Manual refresh of {len(channel_ids)} channels by user {user.get('sub')}")
    result = await coordinator.refresh_all(channel_ids, force=True)

    return RefreshResponse(
        channels_refreshed=result.succeeded,
        videos_added=result.videos_added,
        videos_updated=result.videos_added,
        errors=[
            RefreshError(channel_id=failure.channel_id, error=failure.message)
            for failure in result.errors
        ],
    )
