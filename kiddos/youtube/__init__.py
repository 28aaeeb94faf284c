"""YouTube Data API access for the Kiddos catalog."""

from .client import YouTubeClient, parse_channel_input
from .duration import format_duration, parse_duration
from .models import ChannelInfo, VideoInfo

__all__ = [
    "ChannelInfo",
    "VideoInfo",
    "YouTubeClient",
    "format_duration",
    "parse_channel_input",
    "parse_duration",
]
