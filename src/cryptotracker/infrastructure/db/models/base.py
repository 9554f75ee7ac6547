# --- START OF FILE: src/cryptotracker/infrastructure/db/models/base.py ---
from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Deterministic constraint names; SQLite batch migrations need them to drop or alter constraints.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Declarative base for the token cache tables."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
# --- END OF FILE ---
