"""
collector/scheduler.py

Explicit owner of the two periodic timers (sampling, reporting) and of the
single Idle/Uploading flag.

Timers issue tick(kind) events on the asyncio event loop, which is the only
timeline allowed to mutate pipeline state. Work completing on other threads
must re-enter through post_threadsafe().
"""

import asyncio
import contextlib
import enum
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

logger = structlog.get_logger(__name__)

TickHandler = Callable[[], Union[Awaitable[None], None]]


class TickKind(str, enum.Enum):
    SAMPLING = "sampling"
    REPORTING = "reporting"


class UploadState(str, enum.Enum):
    IDLE = "idle"
    UPLOADING = "uploading"


class PeriodicTimer:
    """
    Fixed-rate timer running as an asyncio task.

    Deadlines advance by whole periods; ticks missed while a callback
    overran are coalesced rather than fired in a burst.
    """

    def __init__(self, name: str, interval: float, callback: TickHandler) -> None:
        if interval <= 0:
            raise ValueError(f"{name} interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start firing; returns False if the timer was already running."""
        if self.running:
            return False
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"timer-{self.name}"
        )
        logger.info("timer_started", timer=self.name, interval=self.interval)
        return True

    async def stop(self) -> None:
        """Cancel the timer task and wait until it has fully exited."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("timer_stopped", timer=self.name)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.interval
        while True:
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("timer_callback_failed", timer=self.name, error=str(exc))
            deadline += self.interval
            now = loop.time()
            if deadline < now:
                skipped = int((now - deadline) // self.interval) + 1
                deadline += skipped * self.interval
                logger.debug("timer_ticks_coalesced", timer=self.name, skipped=skipped)


class CollectionScheduler:
    """Routes sampling and reporting ticks to their registered handlers."""

    def __init__(self, sample_interval: float, report_interval: float) -> None:
        self.upload_state = UploadState.IDLE
        self._handlers: dict[TickKind, TickHandler] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.sampling_timer = PeriodicTimer(
            TickKind.SAMPLING.value,
            sample_interval,
            lambda: self.tick(TickKind.SAMPLING),
        )
        self.report_timer = PeriodicTimer(
            TickKind.REPORTING.value,
            report_interval,
            lambda: self.tick(TickKind.REPORTING),
        )

    def on_tick(self, kind: TickKind, handler: TickHandler) -> None:
        self._handlers[kind] = handler

    def tick(self, kind: TickKind) -> Union[Awaitable[None], None]:
        """Deliver one tick event to the handler registered for its kind."""
        handler = self._handlers.get(kind)
        if handler is None:
            logger.warning("tick_unhandled", kind=kind.value)
            return None
        return handler()

    # ── Idle/Uploading flag ──────────────────────────────────

    def try_begin_upload(self) -> bool:
        """Atomically claim the upload slot. Must not be split by an await."""
        if self.upload_state is UploadState.UPLOADING:
            return False
        self.upload_state = UploadState.UPLOADING
        return True

    def end_upload(self) -> None:
        self.upload_state = UploadState.IDLE

    # ── Timer control ────────────────────────────────────────

    def start_reporting(self) -> bool:
        self._loop = asyncio.get_running_loop()
        return self.report_timer.start()

    def start_sampling(self) -> bool:
        self._loop = asyncio.get_running_loop()
        return self.sampling_timer.start()

    async def stop_sampling(self) -> None:
        await self.sampling_timer.stop()

    @property
    def sampling(self) -> bool:
        return self.sampling_timer.running

    async def shutdown(self) -> None:
        await self.sampling_timer.stop()
        await self.report_timer.stop()

    def post_threadsafe(self, callback: Callable[..., Any], *args: Any) -> None:
        """Schedule a callback from a foreign thread onto the scheduler's loop."""
        if self._loop is None:
            raise RuntimeError("scheduler has not been started on an event loop")
        self._loop.call_soon_threadsafe(callback, *args)
