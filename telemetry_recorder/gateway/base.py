"""Abstract base class for the durable store behind recordings."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, List, Optional, Sequence, TypeVar

import structlog

from telemetry_recorder.errors import PersistenceError
from telemetry_recorder.schemas import DataPoint, Recording, RecordingUpdate

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PersistenceGateway(ABC):
    """Unified interface to recording storage.

    The gateway is the only component with write access to durable
    storage.  Appends for one recording id must be serialised by the
    implementation; historical points are never mutated in place.
    Failures are reported as :class:`PersistenceError`.
    """

    @abstractmethod
    async def create_recording(
        self, user_id: str, vehicle_id: str, name: str
    ) -> Recording:
        """Create a recording in ``recording`` status and return it."""

    @abstractmethod
    async def append_batch(
        self, recording_id: str, points: Sequence[DataPoint]
    ) -> None:
        """Append *points* (in order) to the recording."""

    @abstractmethod
    async def count_points(self, recording_id: str) -> int:
        """Return the number of persisted points for the recording."""

    @abstractmethod
    async def update_recording_status(
        self, recording_id: str, update: RecordingUpdate
    ) -> Recording:
        """Apply a status transition and return the updated recording."""

    @abstractmethod
    async def delete_recording(self, recording_id: str) -> None:
        """Delete the recording together with its points."""

    @abstractmethod
    async def rename_recording(self, recording_id: str, name: str) -> None:
        """Change the display name of a recording."""

    @abstractmethod
    async def delete_points(self, recording_id: str) -> int:
        """Delete every persisted point of a recording; return how many."""

    @abstractmethod
    async def fetch_points(self, recording_id: str) -> List[DataPoint]:
        """Return the persisted points of a recording in timestamp order."""

    @abstractmethod
    async def get_recording(self, recording_id: str) -> Recording:
        """Return a single recording by id."""

    @abstractmethod
    async def list_recordings(
        self, user_id: str, vehicle_id: Optional[str] = None
    ) -> List[Recording]:
        """Return the user's recordings, newest first."""


async def call_gateway(
    awaitable: Awaitable[T],
    *,
    timeout: float,
    operation: str,
) -> T:
    """Await a gateway call with an explicit timeout.

    Timeouts and unexpected exceptions are converted to
    :class:`PersistenceError` so a stalled or failing store never
    surfaces as silent data loss.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.error("gateway_timeout", operation=operation, timeout=timeout)
        raise PersistenceError(
            f"{operation} timed out after {timeout:g}s"
        ) from exc
    except PersistenceError:
        raise
    except Exception as exc:
        logger.error("gateway_call_failed", operation=operation, error=str(exc))
        raise PersistenceError(f"{operation} failed: {exc}") from exc
