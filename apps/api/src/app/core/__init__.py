"""
Core module - Configuration, database, storage, security, and utilities.
"""

from app.core.config import get_settings, settings
from app.core.database import Base, close_db, get_db, init_db
from app.core.redis import close_redis, get_redis, init_redis
from app.core.security import create_access_token, decode_token
from app.core.storage import BlobStore, LocalBlobStore, get_blob_store

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
    # Storage
    "BlobStore",
    "LocalBlobStore",
    "get_blob_store",
    # Security
    "create_access_token",
    "decode_token",
]
