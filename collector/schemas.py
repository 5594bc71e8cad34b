"""
collector/schemas.py

Pydantic data models for the collection pipeline.
- Vector3 / LocationFix / MotionReading: typed provider readings
- Sample: one immutable, assembled snapshot of every signal
- ParticipantUpdate / ReadingsUpdate: request bodies for the control API
"""

import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from collector.constants import (
    BATTERY_UNAVAILABLE,
    MOTION_FORMAT,
    MOTION_UNAVAILABLE,
    SITTING_TIME_PLACEHOLDER,
)


class Vector3(BaseModel):
    """A triaxial sensor reading."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float

    def render(self) -> str:
        return MOTION_FORMAT.format(x=self.x, y=self.y, z=self.z)


class LocationFix(BaseModel):
    """A geographic position fix."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float

    def render(self) -> str:
        return f"{self.latitude} {self.longitude}"


class MotionReading(BaseModel):
    """Latest motion readings; any vector may be missing independently."""

    model_config = ConfigDict(frozen=True)

    acceleration: Optional[Vector3] = None
    rotation_rate: Optional[Vector3] = None
    magnetic_field: Optional[Vector3] = None


def render_vector(vector: Optional[Vector3]) -> str:
    """Render a motion vector, or the explicit unavailable marker."""
    if vector is None or not all(math.isfinite(v) for v in (vector.x, vector.y, vector.z)):
        return MOTION_UNAVAILABLE
    return vector.render()


class Sample(BaseModel):
    """
    One assembled snapshot of all monitored signals plus participant id.

    Field aliases are the wire names expected by the remote collector.
    `seq` is the durable queue position and is only set on drained samples.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp: str = Field(alias="time")
    participant_id: str = Field(default="", alias="participantid")
    location: Optional[str] = None
    acceleration: str = MOTION_UNAVAILABLE
    gyro: str = MOTION_UNAVAILABLE
    magnetometer: str = MOTION_UNAVAILABLE
    heart_rate: Optional[int] = Field(default=None, alias="heartrate")
    step_count: Optional[int] = Field(default=None, alias="stepcount")
    active_energy: Optional[float] = Field(default=None, alias="activeenergy")
    resting_energy: Optional[float] = Field(default=None, alias="restingenergy")
    battery_level: float = Field(default=BATTERY_UNAVAILABLE, alias="battery")
    sitting_time: int = Field(default=SITTING_TIME_PLACEHOLDER, alias="sittingtime")
    seq: Optional[int] = None

    def to_wire(self) -> dict[str, Any]:
        """Flat field map sent to the remote collector."""
        return self.model_dump(by_alias=True, exclude={"seq"})


class ParticipantUpdate(BaseModel):
    """Request body for configuring the participant identifier."""

    participant_id: str


class ReadingsUpdate(BaseModel):
    """Latest readings pushed by platform sensor bridges; omitted fields are untouched."""

    location: Optional[LocationFix] = None
    motion: Optional[MotionReading] = None
    heart_rate: Optional[int] = None
    step_count: Optional[int] = None
    active_energy: Optional[float] = None
    resting_energy: Optional[float] = None
    battery_level: Optional[float] = Field(default=None, ge=0.0, le=1.0)
