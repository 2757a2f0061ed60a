# Database Models

from .database import Base, DEFAULT_DATABASE_URL, create_session_maker, init_db
from .cache_entry import CacheRecord

__all__ = [
    "Base",
    "DEFAULT_DATABASE_URL",
    "create_session_maker",
    "init_db",
    "CacheRecord",
]
