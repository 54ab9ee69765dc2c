"""Recording session state machine.

A :class:`RecordingSession` owns exactly one recording end-to-end::

    idle --start()--> recording --stop()----> completed
                                --cancel()--> cancelled

``start``, ``add_data_point``, ``stop`` and ``cancel`` are the only
mutators.  Terminal states are final; a new capture needs a new session
instance.  A shared :class:`SessionRegistry` extends the one-active-
session rule across sessions of the same (user, vehicle) owner.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Tuple

import structlog

from telemetry_recorder.buffer import DataPointBuffer
from telemetry_recorder.config import RecorderSettings
from telemetry_recorder.duration import DurationTracker
from telemetry_recorder.errors import NoActiveSession, SessionConflict
from telemetry_recorder.gateway.base import PersistenceGateway, call_gateway
from telemetry_recorder.schemas import (
    DataPoint,
    ParameterValue,
    Recording,
    RecordingStatus,
    RecordingUpdate,
    utc_now,
)

logger = structlog.get_logger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def default_recording_name(now: datetime) -> str:
    """Name used when the caller leaves the recording name blank."""
    return f"Recording {now:%Y-%m-%d %H-%M-%S}"


class SessionRegistry:
    """Tracks the active session per (user, vehicle) owner."""

    def __init__(self) -> None:
        self._active: Dict[Tuple[str, str], "RecordingSession"] = {}

    def active_session(
        self, user_id: str, vehicle_id: str
    ) -> Optional["RecordingSession"]:
        return self._active.get((user_id, vehicle_id))

    def claim(
        self, user_id: str, vehicle_id: str, session: "RecordingSession"
    ) -> None:
        """Reserve the owner slot for *session* or raise ``SessionConflict``."""
        current = self._active.get((user_id, vehicle_id))
        if current is not None and current is not session:
            raise SessionConflict(
                f"A recording is already active for user {user_id!r} "
                f"on vehicle {vehicle_id!r}"
            )
        self._active[(user_id, vehicle_id)] = session

    def release(
        self, user_id: str, vehicle_id: str, session: "RecordingSession"
    ) -> None:
        if self._active.get((user_id, vehicle_id)) is session:
            del self._active[(user_id, vehicle_id)]


# Shared by every session that is not given its own registry.
DEFAULT_REGISTRY = SessionRegistry()


class RecordingSession:
    """Owns one recording's lifecycle, buffer and duration ticker.

    Parameters
    ----------
    gateway:
        Durable store for the recording and its points.
    user_id:
        Owner of the recording.
    settings:
        Flush threshold, persistence timeout and tick interval.
    registry:
        Registry enforcing one active session per (user, vehicle);
        defaults to the process-wide :data:`DEFAULT_REGISTRY`.
    clock:
        Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        user_id: str,
        *,
        settings: Optional[RecorderSettings] = None,
        registry: Optional[SessionRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = settings or RecorderSettings()
        self._gateway = gateway
        self._user_id = user_id
        self._registry = registry if registry is not None else DEFAULT_REGISTRY
        self._clock = clock
        self._timeout = settings.flush_timeout_seconds
        self._buffer = DataPointBuffer(gateway, settings.flush_policy())
        self._tracker = DurationTracker(settings.tick_interval_seconds)
        self._state = SessionState.IDLE
        self._recording: Optional[Recording] = None
        self._starting = False
        self._closing = False

    # -- read-only state ------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def recording(self) -> Optional[Recording]:
        return self._recording

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def is_recording(self) -> bool:
        return self._state is SessionState.RECORDING

    @property
    def elapsed_seconds(self) -> int:
        """Seconds shown by the duration ticker (0 unless recording)."""
        return self._tracker.elapsed

    @property
    def pending_points(self) -> int:
        """Points captured but not yet persisted."""
        return len(self._buffer)

    # -- lifecycle ------------------------------------------------------------

    async def start(self, vehicle_id: str, name: Optional[str] = None) -> Recording:
        """Create the recording and begin accepting data points.

        The recording id is bound into the structlog context vars of the
        calling task until the session leaves ``recording``.
        """
        if self._state is not SessionState.IDLE or self._starting:
            raise SessionConflict(
                f"Session is {self._state.value}; start() needs a fresh session"
            )
        self._registry.claim(self._user_id, vehicle_id, self)

        name = (name or "").strip() or default_recording_name(self._clock())
        self._starting = True
        try:
            recording = await call_gateway(
                self._gateway.create_recording(self._user_id, vehicle_id, name),
                timeout=self._timeout,
                operation="create_recording",
            )
        except BaseException:
            self._registry.release(self._user_id, vehicle_id, self)
            raise
        finally:
            self._starting = False

        self._recording = recording
        self._buffer.bind(recording.id)
        self._tracker.start()
        self._state = SessionState.RECORDING
        structlog.contextvars.bind_contextvars(recording_id=recording.id)
        logger.info(
            "recording_started",
            user_id=self._user_id,
            vehicle_id=vehicle_id,
            name=name,
        )
        return recording

    async def add_data_point(
        self, parameters: Mapping[str, ParameterValue]
    ) -> DataPoint:
        """Stamp *parameters* with the current time and queue them.

        May trigger a batch flush; a failed flush raises
        :class:`PersistenceError` but the points stay queued.
        """
        recording = self._require_active("add_data_point")
        point = DataPoint(
            recording_id=recording.id,
            timestamp=self._clock(),
            parameters=dict(parameters),
        )
        await self._buffer.push(point)
        return point

    async def stop(self) -> Recording:
        """Flush, count and finalise the recording as ``completed``."""
        recording = self._require_active("stop")
        self._closing = True
        try:
            flushed = await self._buffer.flush()
            async with self._buffer.settled():
                count = await call_gateway(
                    self._gateway.count_points(recording.id),
                    timeout=self._timeout,
                    operation="count_points",
                )
                finalised = await self._finalise(
                    recording, RecordingStatus.COMPLETED, count
                )
        finally:
            self._closing = False

        await self._leave(finalised, SessionState.COMPLETED)
        logger.info(
            "recording_stopped",
            recording_id=finalised.id,
            final_flush=flushed,
            data_points_count=finalised.data_points_count,
            duration_seconds=finalised.duration_seconds,
        )
        return finalised

    async def cancel(self, delete_data: bool = False) -> Recording:
        """Abandon the recording.

        Waits for an in-flight flush to land, then drops the points still
        in the buffer.  With *delete_data* the persisted points are
        deleted as well and the count is 0; otherwise they are kept and
        counted.
        """
        recording = self._require_active("cancel")
        self._closing = True
        try:
            async with self._buffer.settled():
                if delete_data:
                    await call_gateway(
                        self._gateway.delete_points(recording.id),
                        timeout=self._timeout,
                        operation="delete_points",
                    )
                    count = 0
                else:
                    count = await call_gateway(
                        self._gateway.count_points(recording.id),
                        timeout=self._timeout,
                        operation="count_points",
                    )
                finalised = await self._finalise(
                    recording, RecordingStatus.CANCELLED, count
                )
                dropped = self._buffer.discard()
        finally:
            self._closing = False

        await self._leave(finalised, SessionState.CANCELLED)
        logger.info(
            "recording_cancelled",
            recording_id=finalised.id,
            delete_data=delete_data,
            dropped_unflushed=dropped,
            data_points_count=finalised.data_points_count,
        )
        return finalised

    # -- internal -------------------------------------------------------------

    def _require_active(self, operation: str) -> Recording:
        if (
            self._state is not SessionState.RECORDING
            or self._closing
            or self._recording is None
        ):
            raise NoActiveSession(
                f"{operation}() requires an active recording "
                f"(session is {self._state.value})"
            )
        return self._recording

    async def _finalise(
        self, recording: Recording, status: RecordingStatus, count: int
    ) -> Recording:
        ended_at = self._clock()
        update = RecordingUpdate(
            status=status,
            ended_at=ended_at,
            duration_seconds=_whole_seconds(ended_at - recording.started_at),
            data_points_count=count,
        )
        return await call_gateway(
            self._gateway.update_recording_status(recording.id, update),
            timeout=self._timeout,
            operation="update_recording_status",
        )

    async def _leave(self, finalised: Recording, state: SessionState) -> None:
        self._recording = finalised
        self._state = state
        await self._tracker.stop()
        self._registry.release(self._user_id, finalised.vehicle_id, self)
        structlog.contextvars.unbind_contextvars("recording_id")


def _whole_seconds(delta: timedelta) -> int:
    return max(0, int(delta.total_seconds()))
