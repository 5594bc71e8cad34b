"""
collector/services/assembler.py

Builds one Sample per sampling tick from the latest provider readings and
hands it to the durable queue.

Provider reads happen synchronously on the tick; the append runs on a
single writer task fed through an ordered buffer, so a slow store never
delays the next round of provider reads.
"""

import asyncio
import math
from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar

import structlog

from collector.constants import (
    BATTERY_UNAVAILABLE,
    TIMESTAMP_FRACTION_DIGITS,
    WRITE_BUFFER_MAX_SAMPLES,
)
from collector.errors import ProviderUnavailable, StorageError
from collector.providers import ProviderSet, SampleProvider
from collector.schemas import LocationFix, MotionReading, Sample, render_vector
from collector.services.queue import DurableQueue

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _local_now() -> datetime:
    return datetime.now(timezone.utc).astimezone()


def _is_finite(value: object) -> bool:
    if isinstance(value, LocationFix):
        return math.isfinite(value.latitude) and math.isfinite(value.longitude)
    if isinstance(value, float):
        return math.isfinite(value)
    return True


def normalize_timestamp(moment: datetime) -> str:
    """
    Shift a moment by its UTC offset and format it as local wall time.

    Naive datetimes are taken as local time. The result is not monotonic
    across daylight-saving transitions.
    """
    if moment.tzinfo is None:
        moment = moment.astimezone()
    offset = moment.utcoffset()
    shifted = moment.astimezone(timezone.utc).replace(tzinfo=None) + offset
    fraction = shifted.microsecond // 10 ** (6 - TIMESTAMP_FRACTION_DIGITS)
    return (
        f"{shifted:%Y-%m-%d} {shifted.hour}:{shifted:%M:%S}"
        f".{fraction:0{TIMESTAMP_FRACTION_DIGITS}d}"
    )


class SampleAssembler:
    """Polls every provider and produces immutable samples."""

    def __init__(
        self,
        providers: ProviderSet,
        queue: DurableQueue,
        participant_id: str = "",
        clock: Callable[[], datetime] = _local_now,
        buffer_size: int = WRITE_BUFFER_MAX_SAMPLES,
    ) -> None:
        self.providers = providers
        self.participant_id = participant_id
        self._queue = queue
        self._clock = clock
        self._buffer: Optional[asyncio.Queue] = None
        self._writer: Optional[asyncio.Task] = None
        self._buffer_size = buffer_size
        self.samples_dropped = 0

    def _read(self, provider: Optional[SampleProvider[T]], signal: str) -> Optional[T]:
        if provider is None:
            return None
        try:
            value = provider.latest()
        except ProviderUnavailable:
            logger.debug("provider_unavailable", signal=signal)
            return None
        except Exception as exc:
            logger.warning("provider_read_failed", signal=signal, error=str(exc))
            return None
        if not _is_finite(value):
            # NaN and infinity have no JSON encoding; treat them as no reading
            logger.debug("provider_reading_not_finite", signal=signal)
            return None
        return value

    def assemble(self) -> Sample:
        """Read the latest value of every signal; missing readings become absent values."""
        p = self.providers
        fix = self._read(p.location, "location")
        motion = self._read(p.motion, "motion") or MotionReading()
        heart_rate = self._read(p.heart_rate, "heart_rate")
        step_count = self._read(p.step_count, "step_count")
        battery = self._read(p.battery_level, "battery_level")
        if battery is None or not 0.0 <= battery <= 1.0:
            battery = BATTERY_UNAVAILABLE

        return Sample(
            timestamp=normalize_timestamp(self._clock()),
            participant_id=self.participant_id,
            location=fix.render() if fix is not None else None,
            acceleration=render_vector(motion.acceleration),
            gyro=render_vector(motion.rotation_rate),
            magnetometer=render_vector(motion.magnetic_field),
            heart_rate=int(heart_rate) if heart_rate is not None else None,
            step_count=int(step_count) if step_count is not None else None,
            active_energy=self._read(p.active_energy, "active_energy"),
            resting_energy=self._read(p.resting_energy, "resting_energy"),
            battery_level=battery,
        )

    async def _persist(self, sample: Sample) -> bool:
        try:
            await self._queue.append(sample)
        except StorageError as exc:
            # Dropped, not retried: retrying could starve later samples
            logger.error(
                "sample_append_failed",
                timestamp=sample.timestamp,
                error=str(exc),
            )
            return False
        return True

    async def collect(self) -> bool:
        """Assemble one sample and append it; False if the append failed."""
        return await self._persist(self.assemble())

    def tick(self) -> None:
        """
        Sampling-timer entry point: assemble now, append on the writer task.

        The write buffer is bounded. When the store falls that far behind,
        the new sample is dropped and logged like a failed append.
        """
        sample = self.assemble()
        if self._buffer is None:
            self._buffer = asyncio.Queue(maxsize=self._buffer_size)
        if self._writer is None or self._writer.done():
            self._writer = asyncio.get_running_loop().create_task(
                self._write_loop(self._buffer), name="sample-writer"
            )
        try:
            self._buffer.put_nowait(sample)
        except asyncio.QueueFull:
            self.samples_dropped += 1
            logger.error(
                "sample_append_failed",
                timestamp=sample.timestamp,
                reason="write_buffer_full",
                pending=self._buffer.qsize(),
            )

    async def _write_loop(self, buffer: asyncio.Queue) -> None:
        while True:
            sample = await buffer.get()
            try:
                await self._persist(sample)
            except Exception as exc:
                logger.error("sample_writer_error", error=str(exc))
            finally:
                buffer.task_done()

    @property
    def pending(self) -> int:
        """Samples assembled but not yet appended."""
        return self._buffer.qsize() if self._buffer is not None else 0

    async def flush(self) -> None:
        """Wait until every buffered sample has reached the durable queue."""
        if self._buffer is not None:
            await self._buffer.join()

    async def close(self) -> None:
        await self.flush()
        writer, self._writer = self._writer, None
        if writer is not None:
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
