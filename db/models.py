"""
db/models.py

SQLAlchemy 2.0 async ORM model definitions for the on-device durable store.
DataPoint columns are named after the upload wire fields.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from config import settings


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine for the embedded store."""
    return create_async_engine(url, pool_pre_ping=True)


def build_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Default engine for the configured on-device store
engine = build_engine(settings.store_url)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class DataPoint(Base):
    """One queued sample awaiting upload; `id` is the queue order."""

    __tablename__ = "data_point"
    # Never reuse ids so a requeued sample keeps its original position
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    time: Mapped[str] = mapped_column(String(32), nullable=False)
    participantid: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    location: Mapped[str | None] = mapped_column(String(64), nullable=True)
    acceleration: Mapped[str] = mapped_column(String(64), nullable=False)
    gyro: Mapped[str] = mapped_column(String(64), nullable=False)
    magnetometer: Mapped[str] = mapped_column(String(64), nullable=False)
    heartrate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stepcount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    activeenergy: Mapped[float | None] = mapped_column(Float, nullable=True)
    restingenergy: Mapped[float | None] = mapped_column(Float, nullable=True)
    battery: Mapped[float] = mapped_column(Float, nullable=False)
    sittingtime: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ParticipantRecord(Base):
    """A configured participant identifier; rows accumulate as history."""

    __tablename__ = "participant_id"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    participant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime, default=datetime.utcnow
    )
