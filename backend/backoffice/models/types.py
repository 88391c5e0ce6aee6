from __future__ import annotations

from decimal import Decimal

from sqlalchemy import BigInteger, Numeric
from sqlalchemy.types import TypeDecorator

from ..quantity import QUANTUM, SCALE

_FACTOR = Decimal(10) ** SCALE


class ExactDecimal(TypeDecorator):
    """
    NUMERIC(19, 4) that stays exact on every backend.

    PostgreSQL stores NUMERIC natively. SQLite has no exact decimal storage,
    so there the value is kept as an integer count of 0.0001 units (the same
    idea as the *_cents columns elsewhere) and SQL-side arithmetic such as
    ``qty + :delta`` is integer arithmetic.
    """
    impl = Numeric(19, 4)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(BigInteger())
        return dialect.type_descriptor(Numeric(19, 4, asdecimal=True))

    def coerce_compared_value(self, op, value):
        # Literals next to these columns are bound at the same scale
        return self

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        if dialect.name == "sqlite":
            return int((value * _FACTOR).to_integral_value())
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "sqlite":
            return (Decimal(int(value)) / _FACTOR).quantize(QUANTUM)
        return Decimal(value).quantize(QUANTUM)
