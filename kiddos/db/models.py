"""SQLAlchemy models for the video catalog."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the form stored in SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Channel(Base):
    """A curated YouTube channel whose uploads are mirrored locally."""

    __tablename__ = "channels"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    custom_url: Mapped[str | None] = mapped_column(String, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    subscriber_count: Mapped[int] = mapped_column(Integer, default=0)
    video_count: Mapped[int] = mapped_column(Integer, default=0)
    uploads_playlist_id: Mapped[str] = mapped_column(String)
    added_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    videos: Mapped[list["CachedVideo"]] = relationship(
        back_populates="channel", cascade="all, delete-orphan", passive_deletes=True
    )
    cache_entry: Mapped["CacheEntry | None"] = relationship(
        back_populates="channel", cascade="all, delete-orphan", passive_deletes=True
    )


class CachedVideo(Base):
    """A video row from the last successful fetch of its channel."""

    __tablename__ = "videos_cache"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    channel_id: Mapped[str] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), index=True
    )
    title: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String, nullable=True)
    published_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    view_count: Mapped[int] = mapped_column(Integer, default=0)
    like_count: Mapped[int] = mapped_column(Integer, default=0)
    # ISO-8601 as returned by the provider; duration_seconds is derived from it
    duration: Mapped[str] = mapped_column(String, default="")
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0)
    cached_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    channel: Mapped["Channel"] = relationship(back_populates="videos")


class CacheEntry(Base):
    """Freshness metadata for one channel's cached videos."""

    __tablename__ = "cache_metadata"

    channel_id: Mapped[str] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), primary_key=True
    )
    last_fetched: Mapped[datetime] = mapped_column(DateTime)
    total_results: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fetch_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    channel: Mapped["Channel"] = relationship(back_populates="cache_entry")


class Setting(Base):
    """Key/value runtime settings shared by every process."""

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(String)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, server_default=func.now()
    )
