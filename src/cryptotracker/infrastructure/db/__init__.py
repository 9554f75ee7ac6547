from .base import create_db_engine, make_session_factory
from .token_store import TokenCacheStore
from .uow import create_tables, session_scope

__all__ = [
    "create_db_engine",
    "make_session_factory",
    "TokenCacheStore",
    "create_tables",
    "session_scope",
]
