"""
tests/test_coordinator.py

Unit tests for collector/services/coordinator.py.
Covers the Idle/Uploading state machine, backpressure, at-most-once loss
and the optional requeue policy.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from collector.errors import StorageError
from collector.providers import CallableProvider, ProviderSet
from collector.scheduler import CollectionScheduler, UploadState
from collector.services.assembler import SampleAssembler
from collector.services.coordinator import UploadCoordinator
from collector.services.uploader import NetworkUploader
from tests.fixtures import GatedUploader, build_sample, fixed_clock, make_queue


def _scheduler() -> CollectionScheduler:
    return CollectionScheduler(sample_interval=60.0, report_interval=60.0)


async def _fill(queue, count: int) -> None:
    for i in range(count):
        await queue.append(build_sample(timestamp=f"2024-06-15 13:30:0{i}.0000"))


@pytest.mark.asyncio
async def test_report_tick_submits_whole_queue_as_one_batch(tmp_path) -> None:
    """Three queued samples and Idle: one upload of 3, Uploading, queue already empty."""
    queue = await make_queue(tmp_path)
    await _fill(queue, 3)
    uploader = GatedUploader(result=True)
    coordinator = UploadCoordinator(_scheduler(), queue, uploader)

    await coordinator.on_report_tick()

    assert coordinator.state is UploadState.UPLOADING
    assert await queue.count() == 0
    # Let the upload task start; completion is still held by the gate
    await _yield()
    assert len(uploader.calls) == 1
    assert len(uploader.calls[0]) == 3

    uploader.release()
    await coordinator.join()
    assert coordinator.state is UploadState.IDLE
    assert coordinator.batches_lost == 0
    await queue.close()


@pytest.mark.asyncio
async def test_ticks_while_uploading_are_no_ops(tmp_path) -> None:
    """No second upload is issued before the first completion fires."""
    queue = await make_queue(tmp_path)
    await _fill(queue, 2)
    uploader = GatedUploader(result=True)
    coordinator = UploadCoordinator(_scheduler(), queue, uploader)

    await coordinator.on_report_tick()
    await queue.append(build_sample())
    await coordinator.on_report_tick()
    await coordinator.on_report_tick()
    await _yield()

    assert len(uploader.calls) == 1
    assert await queue.count() == 1

    uploader.release()
    await coordinator.join()
    await coordinator.on_report_tick()
    await coordinator.join()

    assert len(uploader.calls) == 2
    assert len(uploader.calls[1]) == 1
    await queue.close()


@pytest.mark.asyncio
async def test_empty_queue_stays_idle(tmp_path) -> None:
    queue = await make_queue(tmp_path)
    uploader = MagicMock()
    uploader.upload = AsyncMock(return_value=True)
    coordinator = UploadCoordinator(_scheduler(), queue, uploader)

    await coordinator.on_report_tick()

    assert coordinator.state is UploadState.IDLE
    uploader.upload.assert_not_called()
    await queue.close()


@pytest.mark.asyncio
async def test_failed_upload_loses_batch_exactly_once(tmp_path) -> None:
    """A failed batch is not re-appended and is not uploaded again."""
    queue = await make_queue(tmp_path)
    await _fill(queue, 3)
    uploader = MagicMock()
    uploader.upload = AsyncMock(return_value=False)
    coordinator = UploadCoordinator(_scheduler(), queue, uploader)

    await coordinator.on_report_tick()
    await coordinator.join()

    assert coordinator.state is UploadState.IDLE
    assert coordinator.batches_lost == 1
    assert await queue.count() == 0

    await coordinator.on_report_tick()
    await coordinator.join()

    uploader.upload.assert_awaited_once()
    assert coordinator.batches_lost == 1
    await queue.close()


@pytest.mark.asyncio
async def test_failed_upload_requeued_when_enabled(tmp_path) -> None:
    queue = await make_queue(tmp_path)
    await _fill(queue, 3)
    uploader = MagicMock()
    uploader.upload = AsyncMock(side_effect=[False, True])
    coordinator = UploadCoordinator(_scheduler(), queue, uploader, requeue_failed=True)

    await coordinator.on_report_tick()
    await coordinator.join()

    assert coordinator.state is UploadState.IDLE
    assert coordinator.batches_lost == 0
    assert await queue.count() == 3

    await coordinator.on_report_tick()
    await coordinator.join()

    first, second = uploader.upload.await_args_list
    assert [s.timestamp for s in first.args[0]] == [s.timestamp for s in second.args[0]]
    assert await queue.count() == 0
    await queue.close()


@pytest.mark.asyncio
async def test_drain_failure_returns_to_idle() -> None:
    queue = MagicMock()
    queue.drain = AsyncMock(side_effect=StorageError("locked"))
    uploader = MagicMock()
    uploader.upload = AsyncMock(return_value=True)
    coordinator = UploadCoordinator(_scheduler(), queue, uploader)

    await coordinator.on_report_tick()

    assert coordinator.state is UploadState.IDLE
    uploader.upload.assert_not_called()


@pytest.mark.asyncio
async def test_raising_uploader_counts_as_failure(tmp_path) -> None:
    queue = await make_queue(tmp_path)
    await _fill(queue, 1)
    uploader = MagicMock()
    uploader.upload = AsyncMock(side_effect=RuntimeError("socket closed"))
    coordinator = UploadCoordinator(_scheduler(), queue, uploader)

    await coordinator.on_report_tick()
    await coordinator.join()

    assert coordinator.state is UploadState.IDLE
    assert coordinator.batches_lost == 1
    await queue.close()


@pytest.mark.asyncio
async def test_non_finite_energy_reading_does_not_block_requeued_uploads(tmp_path) -> None:
    """An infinite energy reading is sent as null, so the batch is accepted and not requeued forever."""
    received: list = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.extend(json.loads(request.content))
        return httpx.Response(200)

    queue = await make_queue(tmp_path)
    providers = ProviderSet(
        heart_rate=CallableProvider("heart_rate", lambda: 72),
        active_energy=CallableProvider("active_energy", lambda: float("inf")),
    )
    assembler = SampleAssembler(providers, queue, participant_id="P1", clock=fixed_clock())
    uploader = NetworkUploader(
        url="http://collector.test/upload",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )
    coordinator = UploadCoordinator(_scheduler(), queue, uploader, requeue_failed=True)

    assert await assembler.collect() is True
    await coordinator.on_report_tick()
    await coordinator.join()

    assert len(received) == 1
    assert received[0]["activeenergy"] is None
    assert received[0]["heartrate"] == 72
    assert coordinator.state is UploadState.IDLE
    assert await queue.count() == 0
    await queue.close()


async def _yield() -> None:
    for _ in range(3):
        await asyncio.sleep(0)
