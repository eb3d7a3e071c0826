"""
SQLAlchemy ORM persistence models for the services layer.

Responsibility
--------------
``DocumentSequenceModel`` holds one counter row per document-number prefix
(``DN``, ``INV``, ``PRO``, ``GR``, ``RR``).  ``SqlAlchemyRepository`` locks
and increments the row to allocate the next document number.

Architecture position
---------------------
**Services layer** -- ORM models consumed by ``SqlAlchemyRepository``.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import Base


class DocumentSequenceModel(Base):
    """
    Document number counter.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "document_sequences"

    name: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
