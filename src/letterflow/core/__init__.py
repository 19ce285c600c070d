"""
Core module - Configuration, database, auth, storage, and utilities.
"""

from letterflow.core.config import get_settings, settings
from letterflow.core.database import Base, close_db, get_db, init_db
from letterflow.core.redis import close_redis, get_redis, init_redis
from letterflow.core.security import decode_token, encode_token

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
    # Security
    "decode_token",
    "encode_token",
]
