"""In-memory point buffer with a threshold flush policy.

Amortises persistence calls: points accumulate until the threshold is
reached, then the oldest ``threshold`` points are handed to
``PersistenceGateway.append_batch`` in one call.  An explicit
:meth:`DataPointBuffer.flush` drains the whole queue.

The batch is cut from the queue before the gateway call is awaited, so
points pushed while a flush is in flight stay queued and are neither
dropped nor flushed twice.  Flushes are serialised with a lock, which
keeps batches in threshold-crossing order.  A failed batch is put back
at the head of the queue and retried by the next flush.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Tuple

import structlog

from telemetry_recorder.errors import PersistenceError
from telemetry_recorder.gateway.base import PersistenceGateway, call_gateway
from telemetry_recorder.schemas import DataPoint

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FlushPolicy:
    """When and how long to flush.

    Attributes
    ----------
    threshold : int
        Buffered points that trigger an automatic flush.
    timeout_seconds : float
        Upper bound on one ``append_batch`` call; expiry is a
        :class:`PersistenceError`.
    """

    threshold: int = 10
    timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.threshold < 1:
            raise ValueError(f"flush threshold must be >= 1, got {self.threshold}")
        if self.timeout_seconds <= 0:
            raise ValueError(
                f"flush timeout must be positive, got {self.timeout_seconds}"
            )


class DataPointBuffer:
    """Ordered queue of points awaiting persistence for one recording."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        policy: Optional[FlushPolicy] = None,
    ) -> None:
        self._gateway = gateway
        self._policy = policy or FlushPolicy()
        self._recording_id: Optional[str] = None
        self._points: List[DataPoint] = []
        self._flush_lock = asyncio.Lock()

    # -- state ----------------------------------------------------------------

    @property
    def policy(self) -> FlushPolicy:
        return self._policy

    @property
    def recording_id(self) -> Optional[str]:
        return self._recording_id

    @property
    def pending(self) -> Tuple[DataPoint, ...]:
        """Snapshot of the points not yet persisted, in push order."""
        return tuple(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def bind(self, recording_id: str) -> None:
        """Attach the buffer to *recording_id* and reset it to empty."""
        self._recording_id = recording_id
        self._points = []

    # -- operations -----------------------------------------------------------

    async def push(self, point: DataPoint) -> int:
        """Append *point*; flush one batch when the threshold is reached.

        The triggered flush takes exactly ``threshold`` points from the
        head of the queue.  Returns the number of points flushed by this
        call (0 when the threshold was not reached, or when an earlier
        flush already took the points).
        """
        if self._recording_id is None:
            raise RuntimeError("DataPointBuffer.bind() must be called before push")
        self._points.append(point)
        if len(self._points) >= self._policy.threshold:
            async with self._flush_lock:
                return await self._flush_locked(self._policy.threshold)
        return 0

    async def flush(self) -> int:
        """Persist everything queued so far and return how many points.

        Safe on an empty buffer (returns 0 without touching the gateway).
        """
        async with self._flush_lock:
            return await self._flush_locked(None)

    @asynccontextmanager
    async def settled(self) -> AsyncIterator[None]:
        """Hold the flush lock: no flush is in flight inside the block."""
        async with self._flush_lock:
            yield

    async def _flush_locked(self, limit: Optional[int]) -> int:
        if not self._points or self._recording_id is None:
            return 0
        if limit is None:
            batch, self._points = self._points, []
        elif len(self._points) < limit:
            # An earlier waiter already took these points.
            return 0
        else:
            batch, self._points = self._points[:limit], self._points[limit:]

        try:
            await call_gateway(
                self._gateway.append_batch(self._recording_id, batch),
                timeout=self._policy.timeout_seconds,
                operation="append_batch",
            )
        except PersistenceError:
            # Re-queue ahead of anything pushed while we were waiting.
            self._points = batch + self._points
            logger.warning(
                "flush_failed",
                recording_id=self._recording_id,
                batch_size=len(batch),
                pending=len(self._points),
            )
            raise

        logger.debug(
            "batch_flushed",
            recording_id=self._recording_id,
            batch_size=len(batch),
            pending=len(self._points),
        )
        return len(batch)

    def discard(self) -> int:
        """Drop every queued point without persisting it."""
        dropped = len(self._points)
        self._points = []
        return dropped
