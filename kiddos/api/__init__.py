"""API routers for the Kiddos catalog."""

from kiddos.api.routes_channels import router as channels_router
from kiddos.api.routes_health import router as health_router
from kiddos.api.routes_settings import router as settings_router
from kiddos.api.routes_videos import router as videos_router

__all__ = [
    "channels_router",
    "health_router",
    "settings_router",
    "videos_router",
]
