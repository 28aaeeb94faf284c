"""Pydantic models for the catalog read path."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SortOrder = Literal["newest", "oldest", "popular"]


class CamelModel(BaseModel):
    """Serializes field names as camelCase, the JSON convention of the web client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VideoQuery(BaseModel):
    """Filter, sort and page parameters for a video listing."""

    page: int = Field(default=1, ge=1)
    # None means the service's configured default page size
    limit: int | None = Field(default=None, ge=1)
    channel_id: str | None = None
    search: str | None = None
    sort: SortOrder = "newest"


class VideoItem(CamelModel):
    """A cached video as presented to the web client."""

    id: str
    channel_id: str
    channel_name: str
    channel_thumbnail: str | None = None
    title: str
    description: str | None = None
    thumbnail_url: str | None = None
    published_at: datetime
    view_count: int
    like_count: int
    duration: str
    duration_formatted: str


class PageMeta(CamelModel):
    """Pagination and cache freshness details of a listing."""

    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool
    oldest_cache_age: int
    cache_stale: bool
    refreshing: bool


class VideoPage(CamelModel):
    """One page of videos plus its metadata."""

    videos: list[VideoItem]
    meta: PageMeta
