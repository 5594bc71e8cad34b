"""
collector/providers.py

Sample provider abstraction.

A provider exposes the latest-known reading of one signal through a
non-blocking `latest()` call. Platform sensor managers are wrapped either by
CallableProvider (pull: the manager keeps a current value) or by
LatestValueProvider (push: the manager delivers readings via callbacks).
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from typing import Any, Callable, Generic, Optional, TypeVar

from collector.schemas import LocationFix, MotionReading, ReadingsUpdate

T = TypeVar("T")


class SampleProvider(ABC, Generic[T]):
    """
    Abstract base class for signal providers.

    Implementations must not block. They return None (or raise
    ProviderUnavailable) when no current reading exists.
    """

    signal: str = "unknown"

    @abstractmethod
    def latest(self) -> Optional[T]:
        """Return the latest reading, or None if there is none."""


class LatestValueProvider(SampleProvider[T]):
    """Holds the most recent value pushed by a platform callback."""

    def __init__(
        self,
        signal: str,
        max_age: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.signal = signal
        self.max_age = max_age
        self._clock = clock
        # Single tuple assignment keeps updates from other threads atomic
        self._current: Optional[tuple[T, float]] = None

    def update(self, value: T) -> None:
        self._current = (value, self._clock())

    def clear(self) -> None:
        self._current = None

    def latest(self) -> Optional[T]:
        current = self._current
        if current is None:
            return None
        value, stamped_at = current
        if self.max_age is not None and self._clock() - stamped_at > self.max_age:
            return None
        return value


class CallableProvider(SampleProvider[T]):
    """Adapts a manager's current-value getter to the provider interface."""

    def __init__(self, signal: str, getter: Callable[[], Optional[T]]) -> None:
        self.signal = signal
        self._getter = getter

    def latest(self) -> Optional[T]:
        return self._getter()


@dataclass
class ProviderSet:
    """The providers polled on every sampling tick; unset slots read as absent."""

    location: Optional[SampleProvider[LocationFix]] = None
    motion: Optional[SampleProvider[MotionReading]] = None
    heart_rate: Optional[SampleProvider[int]] = None
    step_count: Optional[SampleProvider[int]] = None
    active_energy: Optional[SampleProvider[float]] = None
    resting_energy: Optional[SampleProvider[float]] = None
    battery_level: Optional[SampleProvider[float]] = None

    @classmethod
    def push_fed(cls, max_age: Optional[float] = None) -> "ProviderSet":
        """Build a set of LatestValueProviders, one per signal."""
        return cls(
            **{
                slot.name: LatestValueProvider(slot.name, max_age=max_age)
                for slot in fields(cls)
            }
        )

    def push(self, update: ReadingsUpdate) -> list[str]:
        """
        Feed pushed readings into the matching providers.

        Only LatestValueProviders accept pushes. Returns the signal names
        that were updated.
        """
        updated: list[str] = []
        for name in update.model_dump(exclude_none=True):
            provider: Any = getattr(self, name, None)
            if isinstance(provider, LatestValueProvider):
                provider.update(getattr(update, name))
                updated.append(name)
        return updated
