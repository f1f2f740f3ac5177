"""
SQLAlchemy Declarative Base
Shared base class and column mixins
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Type

from sqlalchemy import DateTime, Integer
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def enum_column(enum_cls: Type[Enum], length: int = 20) -> SQLEnum:
    """Portable enum type persisted as the member values"""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Base(DeclarativeBase):
    """Declarative base for all ORM models"""


class IntIdMixin:
    """Integer autoincrement primary key"""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class TimestampMixin:
    """created_at / updated_at columns"""

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )
