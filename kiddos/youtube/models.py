"""Pydantic models for records returned by the YouTube Data API."""

from datetime import datetime

from pydantic import BaseModel


class ChannelInfo(BaseModel):
    """Channel attributes resolved from a channel identifier."""

    id: str
    name: str
    custom_url: str | None = None
    thumbnail_url: str | None = None
    description: str = ""
    subscriber_count: int = 0
    video_count: int = 0
    uploads_playlist_id: str


class VideoInfo(BaseModel):
    """A single upload as returned by the videos endpoint."""

    id: str
    title: str
    description: str = ""
    thumbnail_url: str | None = None
    published_at: datetime
    view_count: int = 0
    like_count: int = 0
    duration: str = ""
