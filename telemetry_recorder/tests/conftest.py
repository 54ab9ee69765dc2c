"""Shared pytest fixtures for recording engine tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator, List, Optional, Sequence

import pytest
import structlog

from telemetry_recorder.config import RecorderSettings
from telemetry_recorder.errors import PersistenceError
from telemetry_recorder.gateway.memory import InMemoryGateway
from telemetry_recorder.schemas import DataPoint

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic UTC clock: each call returns the current time, then
    advances it by *step*."""

    def __init__(
        self, start: datetime = T0, step: timedelta = timedelta(milliseconds=250)
    ) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + self.step
        return current

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FlakyGateway(InMemoryGateway):
    """In-memory gateway whose appends can be made to fail or stall."""

    def __init__(self, clock: Callable[[], datetime]) -> None:
        super().__init__(clock=clock)
        self.fail_appends = 0
        self.stall_appends = False
        self.append_calls = 0
        self.append_started: Optional[asyncio.Event] = None
        self.release_append: Optional[asyncio.Event] = None

    async def append_batch(
        self, recording_id: str, points: Sequence[DataPoint]
    ) -> None:
        self.append_calls += 1
        if self.append_started is not None:
            self.append_started.set()
        if self.release_append is not None:
            await self.release_append.wait()
        if self.stall_appends:
            await asyncio.sleep(3600)
        if self.fail_appends > 0:
            self.fail_appends -= 1
            raise PersistenceError("backend unavailable")
        await super().append_batch(recording_id, points)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> RecorderSettings:
    return RecorderSettings(
        flush_threshold=10,
        flush_timeout_seconds=1.0,
        tick_interval_seconds=0.01,
        poll_interval_seconds=0.001,
    )


@pytest.fixture()
def gateway(clock: FakeClock) -> FlakyGateway:
    return FlakyGateway(clock=clock)


@pytest.fixture(autouse=True)
def _fresh_session_registry(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Give every test an empty default registry and clean log context."""
    from telemetry_recorder import session

    monkeypatch.setattr(session, "DEFAULT_REGISTRY", session.SessionRegistry())
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture()
def make_points(clock: FakeClock) -> Callable[..., List[DataPoint]]:
    """Build ``n`` bound points with increasing timestamps."""

    def _make(
        n: int,
        recording_id: str = "rec-1",
        params: Optional[Callable[[int], dict]] = None,
    ) -> List[DataPoint]:
        params = params or (lambda i: {"rpm": (i + 1) * 100})
        return [
            DataPoint(recording_id=recording_id, timestamp=clock(), parameters=params(i))
            for i in range(n)
        ]

    return _make
