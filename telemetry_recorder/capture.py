"""Asyncio polling loop that feeds a recording session."""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from telemetry_recorder.config import RecorderSettings
from telemetry_recorder.errors import NoActiveSession, PersistenceError
from telemetry_recorder.schemas import Recording
from telemetry_recorder.session import RecordingSession
from telemetry_recorder.source.base import ParameterSource

logger = structlog.get_logger(__name__)


def create_source(settings: RecorderSettings) -> ParameterSource:
    """Factory: return the parameter source for the current config.

    Only the simulation source ships with the engine; hardware transports
    are supplied by the embedding application.
    """
    from telemetry_recorder.source.simulation import SimulationSource

    return SimulationSource(scenario=settings.sim_scenario)


async def run_capture(
    session: RecordingSession,
    source: ParameterSource,
    settings: RecorderSettings,
    shutdown_event: Optional[asyncio.Event] = None,
    *,
    max_samples: Optional[int] = None,
) -> Recording:
    """Poll *source* into *session* until shutdown, then stop the session.

    Parameters
    ----------
    session:
        A session that has already been started.
    source:
        Parameter source; connected on demand and disconnected on exit.
    settings:
        Supplies ``poll_interval_seconds``.
    shutdown_event:
        Set it to end the capture; the session is then stopped and the
        finalised recording returned.
    max_samples:
        Optional cap on recorded samples (ends the capture when reached).
    """
    if not session.is_recording:
        raise NoActiveSession("run_capture() needs a started session")
    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    samples = 0
    pause = settings.poll_interval_seconds
    try:
        while not shutdown_event.is_set():
            if not source.is_connected():
                try:
                    await source.connect()
                    logger.info("source_connected", scenario=settings.sim_scenario)
                except Exception:
                    logger.exception("source_connect_failed")
                    if await _shutdown_within(pause, shutdown_event):
                        break
                    continue

            try:
                reading = await source.read_parameters()
            except Exception:
                logger.exception("parameter_read_failed")
                if await _shutdown_within(pause, shutdown_event):
                    break
                continue

            if reading:
                try:
                    await session.add_data_point(reading)
                except PersistenceError:
                    # Points stay queued; the next flush retries them.
                    logger.warning(
                        "capture_flush_failed",
                        pending=session.pending_points,
                    )
                samples += 1

            if max_samples is not None and samples >= max_samples:
                break
            if await _shutdown_within(pause, shutdown_event):
                break
    finally:
        await source.disconnect()

    logger.info("capture_finished", samples=samples)
    return await session.stop()


async def _shutdown_within(seconds: float, event: asyncio.Event) -> bool:
    """Wait up to *seconds* for *event*; True if shutdown was requested."""
    if event.is_set():
        return True
    try:
        await asyncio.wait_for(event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True
