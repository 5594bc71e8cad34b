"""
collector/app.py

DataCollector: wires providers, assembler, durable queue, coordinator,
uploader and session lifecycle into one pipeline and exposes the
host-facing operations.
"""

from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from collector.errors import StorageError
from collector.providers import ProviderSet
from collector.scheduler import CollectionScheduler, TickKind
from collector.services.assembler import SampleAssembler
from collector.services.coordinator import UploadCoordinator
from collector.services.lifecycle import LifecycleEvent, SessionLifecycleController, SessionState
from collector.services.queue import DurableQueue
from collector.services.uploader import NetworkUploader
from config import settings

logger = structlog.get_logger(__name__)


class DataCollector:
    """
    Owns one sampling/upload pipeline.

    Usage::

        collector = DataCollector()
        await collector.start()              # store ready, report timer running
        await collector.on_session_started() # sampling timer running
        ...
        await collector.shutdown()
    """

    def __init__(
        self,
        providers: Optional[ProviderSet] = None,
        queue: Optional[DurableQueue] = None,
        uploader: Optional[NetworkUploader] = None,
        sample_interval: float = settings.effective_sample_interval,
        report_interval: float = settings.report_interval_s,
        requeue_failed: bool = settings.requeue_failed_batches,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.providers = providers or ProviderSet.push_fed(
            max_age=settings.provider_max_age_s
        )
        self.queue = queue or DurableQueue()
        self.scheduler = CollectionScheduler(sample_interval, report_interval)

        assembler_kwargs: dict[str, Any] = {}
        if clock is not None:
            assembler_kwargs["clock"] = clock
        self.assembler = SampleAssembler(self.providers, self.queue, **assembler_kwargs)

        self.coordinator = UploadCoordinator(
            self.scheduler,
            self.queue,
            uploader or NetworkUploader(),
            requeue_failed=requeue_failed,
        )
        self.lifecycle = SessionLifecycleController(self.scheduler, self.assembler)

        self.scheduler.on_tick(TickKind.SAMPLING, self.assembler.tick)
        self.scheduler.on_tick(TickKind.REPORTING, self.coordinator.on_report_tick)

    @property
    def participant_id(self) -> str:
        return self.assembler.participant_id

    async def start(self) -> None:
        """Prepare the store, load the cached participant id and start reporting."""
        await self.queue.init()
        try:
            stored = await self.queue.peek_participant_id()
        except StorageError as exc:
            logger.error("participant_id_load_failed", error=str(exc))
            stored = None
        self.assembler.participant_id = stored or ""
        self.scheduler.start_reporting()
        logger.info(
            "collector_started",
            participant_id=self.participant_id,
            sample_interval=self.scheduler.sampling_timer.interval,
            report_interval=self.scheduler.report_timer.interval,
        )

    async def start_collecting(self) -> bool:
        """Start the sampling timer; False if it was already running."""
        started = self.scheduler.start_sampling()
        logger.info("collection_start_requested", started=started)
        return started

    async def stop_collecting(self) -> None:
        """Stop the sampling timer and persist samples still in the write buffer."""
        await self.scheduler.stop_sampling()
        await self.assembler.flush()
        logger.info("collection_stopped")

    async def configure_participant(self, participant_id: str) -> None:
        """
        Use this participant id for every subsequent sample.

        The in-memory value applies even if persisting it fails.
        """
        self.assembler.participant_id = participant_id
        try:
            await self.queue.set_participant_id(participant_id)
        except StorageError as exc:
            logger.error(
                "participant_id_persist_failed",
                participant_id=participant_id,
                error=str(exc),
            )

    # ── Extended-execution session callbacks ─────────────────

    async def on_session_started(self) -> SessionState:
        return await self.lifecycle.handle(LifecycleEvent.STARTED)

    async def on_session_will_expire(self) -> SessionState:
        return await self.lifecycle.handle(LifecycleEvent.WILL_EXPIRE)

    async def on_session_invalidated(self, reason: Optional[str] = None) -> SessionState:
        return await self.lifecycle.handle(LifecycleEvent.INVALIDATED, reason=reason)

    async def status(self) -> dict[str, Any]:
        try:
            queued: Optional[int] = await self.queue.count()
        except StorageError as exc:
            logger.warning("queue_count_failed", error=str(exc))
            queued = None
        return {
            "session_state": self.lifecycle.state.value,
            "sampling": self.scheduler.sampling,
            "upload_state": self.coordinator.state.value,
            "queued_samples": queued,
            "pending_writes": self.assembler.pending,
            "samples_dropped": self.assembler.samples_dropped,
            "batches_lost": self.coordinator.batches_lost,
            "participant_id": self.participant_id,
        }

    async def shutdown(self) -> None:
        """Stop both timers, finish outstanding writes and uploads, release the store."""
        await self.scheduler.shutdown()
        await self.assembler.close()
        await self.coordinator.join()
        await self.queue.close()
        logger.info("collector_shut_down")
