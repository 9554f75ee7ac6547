# File: src/cryptotracker/infrastructure/db/uow.py
"""
Unit of Work helpers: table creation and a transactional session scope.
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from cryptotracker.domain.errors import CryptoTrackerError
from .models import Base

log = logging.getLogger(__name__)


def create_tables(engine: Engine) -> None:
    """Creates all tables defined in the models package."""
    log.info("Creating database tables if they do not exist...")
    try:
        Base.metadata.create_all(engine)
        log.info("Database tables checked/created successfully.")
    except Exception as e:
        log.critical(f"Failed to create database tables: {e}", exc_info=True)
        raise


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.
    This handles session creation, commit, rollback, and closing.
    """
    session = session_factory()
    log.debug(f"Session {id(session)} opened.")
    try:
        yield session
        session.commit()
        log.debug(f"Session {id(session)} committed.")
    except CryptoTrackerError:
        # Domain rejections are expected outcomes; the caller decides how loud to be.
        session.rollback()
        raise
    except Exception as e:
        log.error(f"Session {id(session)} rollback due to exception: {e}", exc_info=True)
        session.rollback()
        raise
    finally:
        session.close()
        log.debug(f"Session {id(session)} closed.")
