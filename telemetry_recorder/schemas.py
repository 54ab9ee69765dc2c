"""Recording and DataPoint Pydantic v2 models.

Column names follow the backend tables (``data_recordings`` and
``recording_data_points``) so rows validate directly into these models.
The BRC envelope models keep the camelCase keys of the file format via
aliases.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

# int before float: smart-mode unions keep the exact input type, so an
# int stays an int and a float stays a float through validation.
ParameterValue = Union[int, float, str]
Parameters = Dict[str, ParameterValue]


def truncate_to_millis(ts: datetime) -> datetime:
    """Return *ts* as an aware UTC datetime with millisecond precision.

    Naive datetimes are taken to be UTC already.
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    else:
        ts = ts.astimezone(timezone.utc)
    return ts.replace(microsecond=(ts.microsecond // 1000) * 1000)


def utc_now() -> datetime:
    """Current UTC time truncated to milliseconds."""
    return truncate_to_millis(datetime.now(timezone.utc))


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------

class RecordingStatus(str, Enum):
    """Lifecycle status stored on a recording row."""

    RECORDING = "recording"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DataPoint(BaseModel):
    """One timestamped snapshot of parameter values within a recording.

    Immutable once created.  Parameter keys vary between points of the
    same recording.
    """

    model_config = {"frozen": True}

    id: str = Field(default_factory=new_id, description="Opaque point id")
    recording_id: str = Field(
        default="",
        description="Owning recording id; blank for freshly imported points",
    )
    timestamp: datetime = Field(..., description="Capture time (UTC, ms)")
    parameters: Parameters = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def normalise_timestamp(cls, v: datetime) -> datetime:
        return truncate_to_millis(v)


class Recording(BaseModel):
    """One bounded capture session of parameter readings."""

    # Backend rows carry bookkeeping columns (created_at, updated_at, ...).
    model_config = {"extra": "ignore"}

    id: str
    user_id: str
    vehicle_id: str
    name: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    data_points_count: int = 0
    status: RecordingStatus = RecordingStatus.RECORDING
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        """``True`` while the recording is still being captured."""
        return self.status is RecordingStatus.RECORDING


class RecordingUpdate(BaseModel):
    """Fields written when a recording leaves the ``recording`` state."""

    status: RecordingStatus
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    data_points_count: Optional[int] = None

    def to_fields(self) -> Dict[str, Any]:
        """JSON-ready dict of the fields that are actually set."""
        return self.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# BRC container
# ---------------------------------------------------------------------------

class BRCSample(BaseModel):
    """A single ``data[i]`` entry: epoch-ms time and parameter map."""

    t: int = Field(..., description="Epoch milliseconds")
    p: Parameters = Field(default_factory=dict)


class BRCEnvelope(BaseModel):
    """Top-level BRC document.

    Field declaration order is the key order written to disk.
    """

    model_config = {"populate_by_name": True}

    version: str = "1.0"
    format: Literal["BRC"] = "BRC"
    exported_at: str = Field(..., alias="exportedAt")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    data_points_count: int = Field(..., alias="dataPointsCount")
    parameters: List[str] = Field(default_factory=list)
    data: List[BRCSample] = Field(default_factory=list)
