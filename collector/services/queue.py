"""
collector/services/queue.py

Durable queue of assembled samples backed by the embedded SQL store.
Uses SQLAlchemy 2.0 async sessions.

Append and drain are serialized by one asyncio.Lock and each runs in its own
transaction, so a drain sees an in-flight append either completely or not
at all.
"""

import asyncio
from typing import Optional

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from collector.errors import StorageError
from collector.schemas import Sample
from db.models import (
    Base,
    DataPoint,
    ParticipantRecord,
    build_session_factory,
    engine as default_engine,
)

logger = structlog.get_logger(__name__)


def _to_row(sample: Sample, keep_seq: bool = False) -> DataPoint:
    row = DataPoint(**sample.to_wire())
    if keep_seq and sample.seq is not None:
        row.id = sample.seq
    return row


def _to_sample(row: DataPoint) -> Sample:
    return Sample(
        timestamp=row.time,
        participant_id=row.participantid,
        location=row.location,
        acceleration=row.acceleration,
        gyro=row.gyro,
        magnetometer=row.magnetometer,
        heart_rate=row.heartrate,
        step_count=row.stepcount,
        active_energy=row.activeenergy,
        resting_energy=row.restingenergy,
        battery_level=row.battery,
        sitting_time=row.sittingtime,
        seq=row.id,
    )


class DurableQueue:
    """Append-only sample store with atomic fetch-all-and-delete."""

    def __init__(self, engine: AsyncEngine = default_engine) -> None:
        self._engine = engine
        self._session_factory = build_session_factory(engine)
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        """Create tables if they do not exist yet."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as exc:
            logger.error("store_init_failed", error=str(exc))
            raise StorageError(f"cannot initialize store: {exc}") from exc

    async def close(self) -> None:
        await self._engine.dispose()

    async def append(self, sample: Sample) -> None:
        """Persist one sample. Raises StorageError if the store cannot be written."""
        async with self._lock:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        session.add(_to_row(sample))
            except SQLAlchemyError as exc:
                raise StorageError(f"append failed: {exc}") from exc

    async def _take_all(self) -> list[Sample]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        select(DataPoint).order_by(DataPoint.id)
                    )
                    rows = list(result.scalars().all())
                    if not rows:
                        return []
                    await session.execute(
                        delete(DataPoint).where(DataPoint.id <= rows[-1].id)
                    )
                    return [_to_sample(row) for row in rows]
        except SQLAlchemyError as exc:
            logger.error("queue_drain_failed", error=str(exc))
            raise StorageError(f"drain failed: {exc}") from exc

    async def _add_rows(self, batch: list[Sample], keep_seq: bool) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add_all([_to_row(s, keep_seq=keep_seq) for s in batch])
        except SQLAlchemyError as exc:
            raise StorageError(f"requeue failed: {exc}") from exc

    async def drain(self) -> list[Sample]:
        """
        Return every stored sample in insertion order and delete them.

        Fetch and delete share one transaction; on failure it rolls back
        and the samples stay queued for the next drain. If the caller is
        cancelled, the transaction still finishes and any samples it took
        are put back before the cancellation propagates.
        """
        async with self._lock:
            work = asyncio.ensure_future(self._take_all())
            try:
                batch = await asyncio.shield(work)
            except asyncio.CancelledError:
                try:
                    taken = await work
                except StorageError:
                    taken = []
                if taken:
                    await self._add_rows(taken, keep_seq=True)
                    logger.warning("queue_drain_cancelled", restored=len(taken))
                raise

        logger.debug("queue_drained", batch_size=len(batch))
        return batch

    async def requeue(self, batch: list[Sample]) -> None:
        """Put drained samples back at their original queue positions."""
        if not batch:
            return
        async with self._lock:
            await self._add_rows(batch, keep_seq=True)
        logger.info("batch_requeued", batch_size=len(batch))

    async def count(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(DataPoint)
                )
                return result.scalar_one()
        except SQLAlchemyError as exc:
            raise StorageError(f"count failed: {exc}") from exc

    async def peek_participant_id(self) -> Optional[str]:
        """Return the most recently configured participant id, if any."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ParticipantRecord.participant_id)
                    .order_by(ParticipantRecord.id.desc())
                    .limit(1)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"participant lookup failed: {exc}") from exc

    async def set_participant_id(self, participant_id: str) -> None:
        """Store a new participant id record; earlier records are kept."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(ParticipantRecord(participant_id=participant_id))
        except SQLAlchemyError as exc:
            raise StorageError(f"participant save failed: {exc}") from exc
        logger.info("participant_id_saved", participant_id=participant_id)
