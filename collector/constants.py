"""
collector/constants.py

Cadence, formatting and sentinel constants used by the collection pipeline.
Magic numbers in pipeline logic are prohibited; reference them from here.
"""

# ── Sampling cadence (seconds) ───────────────────────────────
HIGH_FREQUENCY_SAMPLE_INTERVAL_S: float = 0.2
LOW_FREQUENCY_SAMPLE_INTERVAL_S: float = 1.0
DEFAULT_REPORT_INTERVAL_S: float = 1.0

# ── Sample rendering ─────────────────────────────────────────
MOTION_UNAVAILABLE: str = "unavailable"
MOTION_FORMAT: str = "x:{x:.3f} y:{y:.3f} z:{z:.3f}"
TIMESTAMP_FRACTION_DIGITS: int = 4

# ── Write buffer ─────────────────────────────────────────────
WRITE_BUFFER_MAX_SAMPLES: int = 300  # one minute at the high-frequency cadence

# ── Sentinels ────────────────────────────────────────────────
BATTERY_UNAVAILABLE: float = -1.0
SITTING_TIME_PLACEHOLDER: int = 0

# ── Wire format ──────────────────────────────────────────────
WIRE_FIELDS: tuple[str, ...] = (
    "time",
    "location",
    "heartrate",
    "stepcount",
    "acceleration",
    "gyro",
    "magnetometer",
    "battery",
    "activeenergy",
    "restingenergy",
    "participantid",
    "sittingtime",
)
