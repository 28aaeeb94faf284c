"""FastAPI dependencies for API routers."""

from datetime import timedelta

from fastapi import Depends

from kiddos.cache.coordinator import RefreshCoordinator
from kiddos.cache.syncer import ChannelSyncer
from kiddos.catalog.query import CatalogQueryService
from kiddos.config import get_settings
from kiddos.db.session import get_sessionmaker
from kiddos.errors import NotConfigured
from kiddos.youtube.client import YouTubeClient

_coordinator: RefreshCoordinator | None = None


def _youtube_client() -> YouTubeClient:
    settings = get_settings()
    return YouTubeClient(
        settings.youtube_api_key, timeout=settings.provider_timeout_seconds
    )


def get_provider() -> YouTubeClient:
    """Dependency returning a YouTube Data API client.

    Raises:
        NotConfigured: If no API key is set
    """
    if not get_settings().youtube_api_key:
        raise NotConfigured()
    return _youtube_client()


def get_syncer(provider: YouTubeClient = Depends(get_provider)) -> ChannelSyncer:
    """Dependency returning a ChannelSyncer bound to the app database."""
    settings = get_settings()
    return ChannelSyncer(
        get_sessionmaker(),
        provider,
        fetch_timeout=settings.sync_timeout_seconds,
        default_max_results=settings.videos_per_channel_default,
    )


def get_coordinator() -> RefreshCoordinator:
    """Dependency returning the process-wide RefreshCoordinator.

    A single instance is kept so background refresh tasks can be tracked
    and cancelled on shutdown.
    """
    global _coordinator

    if _coordinator is None:
        settings = get_settings()
        _coordinator = RefreshCoordinator(
            get_sessionmaker(),
            # Unchecked client: listings work without a key, refreshes then
            # fail per channel with NotConfigured
            get_syncer(_youtube_client()),
            concurrency=settings.refresh_concurrency,
            lease_max_age=timedelta(minutes=settings.refresh_lease_max_minutes),
        )

    return _coordinator


def get_query_service(
    coordinator: RefreshCoordinator = Depends(get_coordinator),
) -> CatalogQueryService:
    """Dependency returning the catalog read service."""
    settings = get_settings()
    return CatalogQueryService(
        coordinator,
        min_duration_seconds=settings.min_video_duration_seconds,
        default_ttl_minutes=settings.cache_duration_minutes_default,
        page_size_default=settings.page_size_default,
        page_size_max=settings.page_size_max,
    )


async def shutdown_coordinator() -> None:
    """Cancel background refreshes and drop the coordinator singleton."""
    global _coordinator
    if _coordinator is not None:
        await _coordinator.shutdown()
    _coordinator = None
