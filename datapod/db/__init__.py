"""Database package: shared engine, session factory, tenant scope, and Redis pool."""

from datapod.db.base import Base, JSONType, close_db, get_session_factory, init_db
from datapod.db.redis import close_redis, get_redis, init_redis
from datapod.db.tenant import current_user_id, tenant_session

__all__ = [
    "Base",
    "JSONType",
    "close_db",
    "close_redis",
    "current_user_id",
    "get_redis",
    "get_session_factory",
    "init_db",
    "init_redis",
    "tenant_session",
]
