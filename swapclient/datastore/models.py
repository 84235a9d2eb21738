"""
Local mirror tables.
Resources are stored as JSON documents alongside the columns used for lookups.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all local tables."""

    pass


class RoscaPoolCacheDB(Base):
    """Public pools (not entity scoped)."""

    __tablename__ = "rosca_pools"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Server order of the last sync
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    data: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<RoscaPoolCache(id={self.id})>"


class RoscaEnrollmentCacheDB(Base):
    """Enrollments, isolated per entity."""

    __tablename__ = "rosca_enrollments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    joined_at: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    data: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    __table_args__ = (Index("idx_enrollment_entity_joined", "entity_id", "joined_at"),)

    def __repr__(self) -> str:
        return f"<RoscaEnrollmentCache(id={self.id}, entity={self.entity_id})>"


class RoscaPaymentCacheDB(Base):
    """Payment history per enrollment."""

    __tablename__ = "rosca_payments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    enrollment_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    due_date: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    data: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )


class SyncTimestampDB(Base):
    """Last successful sync per resource key (epoch seconds)."""

    __tablename__ = "sync_timestamps"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    synced_at: Mapped[float] = mapped_column(Float, nullable=False)
