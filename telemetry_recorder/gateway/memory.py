"""Process-local gateway (no backend required).

Keeps recordings and their points in dictionaries.  Appends for the same
recording are serialised with a per-recording ``asyncio.Lock``; every
accepted batch is also kept in :attr:`InMemoryGateway.batches` so callers
can observe flush boundaries.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from telemetry_recorder.errors import PersistenceError
from telemetry_recorder.gateway.base import PersistenceGateway
from telemetry_recorder.schemas import (
    DataPoint,
    Recording,
    RecordingUpdate,
    new_id,
    utc_now,
)


class InMemoryGateway(PersistenceGateway):
    """Dictionary-backed :class:`PersistenceGateway`."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._recordings: Dict[str, Recording] = {}
        self._points: Dict[str, List[DataPoint]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self.batches: List[Tuple[str, List[DataPoint]]] = []

    # -- recordings -----------------------------------------------------------

    async def create_recording(
        self, user_id: str, vehicle_id: str, name: str
    ) -> Recording:
        recording = Recording(
            id=new_id(),
            user_id=user_id,
            vehicle_id=vehicle_id,
            name=name,
            started_at=self._clock(),
        )
        self._recordings[recording.id] = recording
        self._points[recording.id] = []
        return recording

    async def get_recording(self, recording_id: str) -> Recording:
        return self._require(recording_id)

    async def list_recordings(
        self, user_id: str, vehicle_id: Optional[str] = None
    ) -> List[Recording]:
        found = [
            rec
            for rec in self._recordings.values()
            if rec.user_id == user_id
            and (vehicle_id is None or rec.vehicle_id == vehicle_id)
        ]
        return sorted(found, key=lambda rec: rec.started_at, reverse=True)

    async def update_recording_status(
        self, recording_id: str, update: RecordingUpdate
    ) -> Recording:
        current = self._require(recording_id)
        if not current.is_active:
            raise PersistenceError(
                f"Recording {recording_id} is already {current.status.value}"
            )
        fields = update.model_dump(exclude_none=True)
        updated = current.model_copy(update=fields)
        self._recordings[recording_id] = updated
        return updated

    async def rename_recording(self, recording_id: str, name: str) -> None:
        current = self._require(recording_id)
        self._recordings[recording_id] = current.model_copy(update={"name": name})

    async def delete_recording(self, recording_id: str) -> None:
        self._require(recording_id)
        del self._recordings[recording_id]
        self._points.pop(recording_id, None)
        self._locks.pop(recording_id, None)

    # -- points ---------------------------------------------------------------

    async def append_batch(
        self, recording_id: str, points: Sequence[DataPoint]
    ) -> None:
        self._require(recording_id)
        async with self._lock_for(recording_id):
            bound = [
                p
                if p.recording_id == recording_id
                else p.model_copy(update={"recording_id": recording_id})
                for p in points
            ]
            # Same id twice is a retried write; keep the stored copy.
            stored = {p.id for p in self._points[recording_id]}
            self._points[recording_id].extend(
                p for p in bound if p.id not in stored
            )
            self.batches.append((recording_id, bound))

    async def count_points(self, recording_id: str) -> int:
        self._require(recording_id)
        return len(self._points[recording_id])

    async def fetch_points(self, recording_id: str) -> List[DataPoint]:
        self._require(recording_id)
        return sorted(self._points[recording_id], key=lambda p: p.timestamp)

    async def delete_points(self, recording_id: str) -> int:
        self._require(recording_id)
        async with self._lock_for(recording_id):
            removed = len(self._points[recording_id])
            self._points[recording_id] = []
        return removed

    # -- internal -------------------------------------------------------------

    def _require(self, recording_id: str) -> Recording:
        try:
            return self._recordings[recording_id]
        except KeyError:
            raise PersistenceError(f"Unknown recording '{recording_id}'") from None

    def _lock_for(self, recording_id: str) -> asyncio.Lock:
        lock = self._locks.get(recording_id)
        if lock is None:
            lock = self._locks[recording_id] = asyncio.Lock()
        return lock
