"""SQLAlchemy database models for the local record store."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class StoredRecord(Base):
    """One JSON record in a named collection.

    The record body lives in ``data``. ``updated_at`` mirrors the record's
    ``updatedAt`` so collections can be scanned in change order.
    """

    __tablename__ = "records"

    collection: Mapped[str] = mapped_column(String(100), primary_key=True)
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )
    stored_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("idx_records_collection_updated", "collection", "updated_at"),
    )

    def __repr__(self) -> str:
        """String representation of stored record."""
        return f"<StoredRecord(collection={self.collection!r}, id={self.id!r})>"
