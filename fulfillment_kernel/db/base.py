"""
ORM base classes shared by every document table.

Header tables (sales orders, deliveries, invoices, receipts, returns) and
their line tables all derive from ``TrackedBase``; the headers that can be
edited after creation derive from ``VersionedBase`` instead so that two
writers cannot silently overwrite each other.

Column conventions:
    - Identifiers are Python ``UUID`` objects, persisted as 36-character
      strings so the same schema runs on SQLite and PostgreSQL.
    - Quantities and money are ``Decimal`` in ``Numeric(38, 9)``; floats
      never reach a column.
    - Timestamps are timezone-aware.  SQLite hands them back naive, which
      is what ``as_utc`` repairs when rows are turned back into DTOs.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.types import TypeDecorator

__all__ = ["UUID", "UUIDString", "Base", "TrackedBase", "VersionedBase", "as_utc"]


class UUIDString(TypeDecorator):
    """Document and line identifiers as text."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Declarative root; maps annotation types to portable column types."""

    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    # DTOs always arrive with their own id; uuid4 covers rows built in place.
    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds row bookkeeping: when the row was written and by whom.

    ``created_at`` and ``updated_at`` fall back to the database clock; the
    module services pass their injected ``Clock`` value wherever a document
    records a business time of its own.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)


class VersionedBase(TrackedBase):
    """
    Document header under optimistic locking.

    ``version`` is SQLAlchemy's ``version_id_col``: it starts at 1 and every
    flushed UPDATE adds one with a ``WHERE version = <loaded>`` guard.  A
    writer holding an older copy gets ``StaleDataError`` at flush time,
    which ``SqlAlchemyRepository`` turns into ``ConflictError``.
    """

    __abstract__ = True

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    @declared_attr.directive
    def __mapper_args__(cls) -> dict:
        return {"version_id_col": cls.__table__.c.version}


def as_utc(value: datetime | None) -> datetime | None:
    """Give a naive timestamp read from SQLite back its UTC zone."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
