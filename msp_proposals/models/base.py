"""
Base model class and shared column types.

WHAT: Declarative base, the timestamp mixin, and the column types every
pricing table uses (enum columns, money and rate columns).

WHY: Money, quantities and rates must be stored with the same precision
everywhere, or a value read back from one table rounds differently from
the same value read from another. Defining the types once keeps them
identical across proposals, items and approvals.
"""

from datetime import datetime
from enum import Enum
from typing import Type
from sqlalchemy import Column, DateTime, Numeric, Enum as SQLEnum
from sqlalchemy.orm import DeclarativeBase


# Amounts already rounded to the currency minor unit (totals, total_price)
Money = Numeric(14, 2)

# Raw user input: quantities, unit prices, fixed discounts, setup fees.
# Kept at 4 places so the engine rounds, not the database.
Amount = Numeric(14, 4)

# Percentages in [0, 100]
Rate = Numeric(7, 4)


def enum_column(enum_class: Type[Enum], name: str) -> SQLEnum:
    """
    Column type for a str-valued Enum.

    WHY: Non-native enums are stored as VARCHAR so the same schema works on
    PostgreSQL and SQLite; values_callable stores the lowercase value that
    the API also uses.
    """
    return SQLEnum(
        enum_class,
        name=name,
        native_enum=False,
        values_callable=lambda enum: [e.value for e in enum],
        length=32,
    )


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    WHY: DeclarativeBase provides the foundation for SQLAlchemy 2.0 models
    with improved type hints and async support.
    """

    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.

    WHY: Proposal lists sort by last update, so every edit bumps updated_at.
    Timestamps are naive UTC.
    """

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
