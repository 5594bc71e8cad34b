"""
tests/fixtures.py

Shared test data and helper functions for constructing samples, providers
and stores. All tests must use these helpers instead of hardcoding values.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from collector.providers import LatestValueProvider, ProviderSet
from collector.schemas import LocationFix, MotionReading, Sample, Vector3
from collector.services.queue import DurableQueue
from db.models import build_engine

# ── Fixed clock ─────────────────────────────────────────────

TEST_TZ = timezone(timedelta(hours=8))
TEST_MOMENT = datetime(2024, 6, 15, 13, 30, 0, 123400, tzinfo=TEST_TZ)
TEST_TIMESTAMP = "2024-06-15 13:30:00.1234"


def fixed_clock(moment: datetime = TEST_MOMENT) -> Callable[[], datetime]:
    return lambda: moment


def stepping_clock(
    start: datetime = TEST_MOMENT,
    step: timedelta = timedelta(milliseconds=200),
) -> Callable[[], datetime]:
    """Clock advancing by `step` on every call."""
    state = {"now": start - step}

    def _clock() -> datetime:
        state["now"] += step
        return state["now"]

    return _clock


# ── Builders ────────────────────────────────────────────────


def build_sample(
    timestamp: str = TEST_TIMESTAMP,
    participant_id: str = "P1",
    heart_rate: Optional[int] = 72,
    step_count: Optional[int] = 1500,
    battery_level: float = 0.81,
    location: Optional[str] = None,
) -> Sample:
    """Build a Sample with sensible defaults for testing."""
    return Sample(
        timestamp=timestamp,
        participant_id=participant_id,
        location=location,
        heart_rate=heart_rate,
        step_count=step_count,
        active_energy=12.5,
        resting_energy=60.25,
        battery_level=battery_level,
    )


def build_providers(
    heart_rate: Optional[int] = 72,
    step_count: Optional[int] = 1500,
    battery_level: Optional[float] = 0.81,
    location: Optional[LocationFix] = None,
    motion: Optional[MotionReading] = None,
) -> ProviderSet:
    """Build a push-fed ProviderSet preloaded with the given readings."""
    providers = ProviderSet.push_fed()
    readings = {
        "heart_rate": heart_rate,
        "step_count": step_count,
        "battery_level": battery_level,
        "location": location,
        "motion": motion,
    }
    for name, value in readings.items():
        if value is not None:
            provider = getattr(providers, name)
            assert isinstance(provider, LatestValueProvider)
            provider.update(value)
    return providers


def build_motion() -> MotionReading:
    return MotionReading(
        acceleration=Vector3(x=0.1, y=-0.2, z=9.81),
        rotation_rate=Vector3(x=0.0, y=0.5, z=-0.25),
        magnetic_field=None,
    )


def store_url(directory: Path) -> str:
    return f"sqlite+aiosqlite:///{directory / 'collector.db'}"


async def make_queue(directory: Path, init: bool = True) -> DurableQueue:
    """Open a DurableQueue on a SQLite file inside `directory`."""
    queue = DurableQueue(build_engine(store_url(directory)))
    if init:
        await queue.init()
    return queue


class GatedUploader:
    """Uploader whose completion is held until release() is called."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.calls: list[list[Sample]] = []
        self._gate = asyncio.Event()

    def release(self) -> None:
        self._gate.set()

    async def upload(self, batch: list[Sample]) -> bool:
        self.calls.append(batch)
        await self._gate.wait()
        return self.result
