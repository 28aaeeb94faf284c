"""Database module for the Kiddos catalog."""

from kiddos.db.models import Base, CachedVideo, CacheEntry, Channel, Setting, utcnow
from kiddos.db.session import get_engine, get_session, get_sessionmaker, init_db

__all__ = [
    "Base",
    "CacheEntry",
    "CachedVideo",
    "Channel",
    "Setting",
    "get_engine",
    "get_session",
    "get_sessionmaker",
    "init_db",
    "utcnow",
]
