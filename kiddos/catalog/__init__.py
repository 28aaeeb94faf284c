"""Catalog read path."""

from .models import PageMeta, VideoItem, VideoPage, VideoQuery
from .query import CatalogQueryService

__all__ = ["CatalogQueryService", "PageMeta", "VideoItem", "VideoPage", "VideoQuery"]
