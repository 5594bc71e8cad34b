"""
collector/services/coordinator.py

Upload Coordinator: on each report tick, drains the durable queue and hands
a non-empty batch to the uploader, keeping at most one upload outstanding.

Samples leave durable storage before the network attempt. Unless requeueing
is enabled, a failed upload loses that batch (at-most-once delivery).
"""

import asyncio
from typing import Optional

import structlog

from collector.errors import StorageError
from collector.scheduler import CollectionScheduler, UploadState
from collector.schemas import Sample
from collector.services.queue import DurableQueue
from collector.services.uploader import NetworkUploader

logger = structlog.get_logger(__name__)


class UploadCoordinator:
    """Idle/Uploading state machine driven by report ticks."""

    def __init__(
        self,
        scheduler: CollectionScheduler,
        queue: DurableQueue,
        uploader: NetworkUploader,
        requeue_failed: bool = False,
    ) -> None:
        self._scheduler = scheduler
        self._queue = queue
        self._uploader = uploader
        self.requeue_failed = requeue_failed
        self._inflight: Optional[asyncio.Task] = None
        self.batches_lost = 0

    @property
    def state(self) -> UploadState:
        return self._scheduler.upload_state

    async def on_report_tick(self) -> None:
        """
        Flow:
        1. Claim the upload slot; ticks while Uploading are no-ops
        2. Drain the durable queue
        3. Empty batch or storage failure: back to Idle
        4. Otherwise start the upload and return while still Uploading
        """
        if not self._scheduler.try_begin_upload():
            logger.debug("report_tick_skipped", reason="upload_outstanding")
            return

        handed_off = False
        try:
            batch = await self._queue.drain()
            if batch:
                logger.info("upload_started", batch_size=len(batch))
                self._inflight = asyncio.get_running_loop().create_task(
                    self._upload(batch), name="batch-upload"
                )
                handed_off = True
        except StorageError as exc:
            logger.error("report_drain_failed", error=str(exc))
        finally:
            # Also runs when the report timer is cancelled mid-drain
            if not handed_off:
                self._scheduler.end_upload()

    async def _upload(self, batch: list[Sample]) -> None:
        succeeded = False
        try:
            succeeded = await self._uploader.upload(batch)
        except Exception as exc:
            logger.error("uploader_raised", error=str(exc))
        finally:
            if not succeeded:
                await self._handle_failure(batch)
            self._scheduler.end_upload()

    async def _handle_failure(self, batch: list[Sample]) -> None:
        if self.requeue_failed:
            try:
                await self._queue.requeue(batch)
                return
            except StorageError as exc:
                logger.error("requeue_failed", error=str(exc))
        self.batches_lost += 1
        logger.warning(
            "upload_batch_lost",
            batch_size=len(batch),
            first_time=batch[0].timestamp,
            last_time=batch[-1].timestamp,
        )

    async def join(self) -> None:
        """Wait for the outstanding upload, if any, to complete."""
        if self._inflight is not None:
            await self._inflight
