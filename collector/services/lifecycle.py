"""
collector/services/lifecycle.py

Session Lifecycle Controller.
Gates the sampling timer on the host's extended-execution session so that
sampling only runs while background execution time is guaranteed.

Inactive --STARTED--> Active --WILL_EXPIRE--> Expiring
Active/Expiring --INVALIDATED--> Inactive
"""

import enum
from typing import Optional

import structlog

from collector.scheduler import CollectionScheduler
from collector.services.assembler import SampleAssembler

logger = structlog.get_logger(__name__)


class SessionState(str, enum.Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    EXPIRING = "expiring"


class LifecycleEvent(str, enum.Enum):
    STARTED = "started"
    WILL_EXPIRE = "will_expire"
    INVALIDATED = "invalidated"


class SessionLifecycleController:
    """Small state machine driven by host-agnostic lifecycle events."""

    def __init__(
        self,
        scheduler: CollectionScheduler,
        assembler: SampleAssembler,
    ) -> None:
        self._scheduler = scheduler
        self._assembler = assembler
        self.state = SessionState.INACTIVE

    def _transition(self, new_state: SessionState, event: LifecycleEvent) -> None:
        logger.info(
            "session_state_changed",
            event=event.value,
            previous=self.state.value,
            current=new_state.value,
        )
        self.state = new_state

    async def handle(
        self,
        event: LifecycleEvent,
        reason: Optional[str] = None,
    ) -> SessionState:
        """Apply one lifecycle event; events invalid in the current state are ignored."""
        if event is LifecycleEvent.STARTED and self.state is SessionState.INACTIVE:
            self._scheduler.start_sampling()
            self._transition(SessionState.ACTIVE, event)

        elif event is LifecycleEvent.WILL_EXPIRE and self.state is SessionState.ACTIVE:
            self._transition(SessionState.EXPIRING, event)
            # Persist in-flight samples before the host revokes execution time
            await self._assembler.flush()

        elif event is LifecycleEvent.INVALIDATED and self.state in (
            SessionState.ACTIVE,
            SessionState.EXPIRING,
        ):
            await self._scheduler.stop_sampling()
            await self._assembler.flush()
            if reason:
                logger.info("session_invalidated", reason=reason)
            self._transition(SessionState.INACTIVE, event)

        else:
            logger.warning(
                "session_event_ignored",
                event=event.value,
                state=self.state.value,
            )

        return self.state
