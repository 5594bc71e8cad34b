"""
collector/routers/control.py

Host control endpoints.
Lets the host platform configure the participant, toggle collection, relay
extended-session events and push the latest sensor readings.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from collector.app import DataCollector
from collector.schemas import ParticipantUpdate, ReadingsUpdate
from collector.services.lifecycle import LifecycleEvent

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_collector(request: Request) -> DataCollector:
    return request.app.state.collector


@router.post("/participant")
async def configure_participant(
    body: ParticipantUpdate,
    collector: DataCollector = Depends(get_collector),
) -> dict[str, str]:
    await collector.configure_participant(body.participant_id)
    return {"participant_id": collector.participant_id}


@router.post("/collection/start")
async def start_collecting(
    collector: DataCollector = Depends(get_collector),
) -> dict[str, bool]:
    started = await collector.start_collecting()
    return {"sampling": True, "started": started}


@router.post("/collection/stop")
async def stop_collecting(
    collector: DataCollector = Depends(get_collector),
) -> dict[str, bool]:
    await collector.stop_collecting()
    return {"sampling": False}


@router.post("/session/{event}")
async def session_event(
    event: str,
    reason: str | None = None,
    collector: DataCollector = Depends(get_collector),
) -> dict[str, str]:
    """Relay one extended-session event from the host."""
    try:
        lifecycle_event = LifecycleEvent(event)
    except ValueError:
        logger.warning("session_event_unknown", event=event)
        raise HTTPException(
            status_code=404, detail=f"unknown session event {event!r}"
        ) from None

    state = await collector.lifecycle.handle(lifecycle_event, reason=reason)
    return {"session_state": state.value}


@router.post("/readings")
async def push_readings(
    body: ReadingsUpdate,
    collector: DataCollector = Depends(get_collector),
) -> dict[str, list[str]]:
    updated = collector.providers.push(body)
    logger.debug("readings_pushed", signals=updated)
    return {"updated": updated}


@router.get("/status")
async def status(
    collector: DataCollector = Depends(get_collector),
) -> dict:
    return await collector.status()
