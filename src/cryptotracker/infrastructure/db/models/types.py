# src/cryptotracker/infrastructure/db/models/types.py
"""
Column types shared by the token cache models.
"""

from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator


class ExactDecimal(TypeDecorator):
    """
    A Decimal column that round-trips every digit.

    Servers with an arbitrary-precision NUMERIC store it natively. SQLite
    only has binary floats for numerics, so there the value is kept as its
    plain-notation string (no exponent, so `CAST(... AS FLOAT)` still orders
    it correctly).
    """
    impl = Numeric
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(80))
        return dialect.type_descriptor(Numeric(asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        if dialect.name == "sqlite":
            return format(value, "f")
        return value

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, Decimal):
            return value
        return Decimal(str(value))
