"""Video catalog cache: freshness policy, channel sync and coordinated refresh."""

from .coordinator import BatchResult, ChannelFailure, RefreshCoordinator
from .freshness import cache_age_minutes, is_stale
from .syncer import ChannelSyncer

__all__ = [
    "BatchResult",
    "ChannelFailure",
    "ChannelSyncer",
    "RefreshCoordinator",
    "cache_age_minutes",
    "is_stale",
]
