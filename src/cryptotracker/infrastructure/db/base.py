# src/cryptotracker/infrastructure/db/base.py
"""
Database engine setup.

Engines are built from a URL rather than at import time so tests (and the
service wiring in `boot.py`) can point the cache at any database.
"""

import json
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .models.base import Base


# --- Custom JSON Serializer ---
def _custom_json_serializer(obj):
    """
    Converts Decimal objects to strings so price series can be stored in
    JSON columns without losing precision.
    """
    if isinstance(obj, Decimal):
        return str(obj)
    raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")


def create_db_engine(database_url: str) -> Engine:
    return create_engine(
        database_url,
        # SQLite connections are shared between the event loop thread and the
        # executor threads FastAPI runs sync dependencies in.
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {},
        pool_pre_ping=not database_url.startswith("sqlite"),
        json_serializer=lambda obj: json.dumps(obj, default=_custom_json_serializer),
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


__all__ = ["Base", "create_db_engine", "make_session_factory"]
