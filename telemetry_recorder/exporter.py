"""File-level export and import of recorded point sets.

Wraps :mod:`telemetry_recorder.codec` with UTF-8 file I/O and the two
gateway-aware helpers used by the dashboard: exporting a stored recording
and re-inserting imported points into a recording.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, List, Literal, Mapping, Optional, Sequence

import structlog

from telemetry_recorder.codec import decode_brc, decode_csv, encode_brc, encode_csv
from telemetry_recorder.config import RecorderSettings
from telemetry_recorder.errors import ExportError, InvalidFormatError
from telemetry_recorder.gateway.base import PersistenceGateway, call_gateway
from telemetry_recorder.schemas import DataPoint, Recording

logger = structlog.get_logger(__name__)

ExportFormat = Literal["csv", "brc"]

_UNSAFE_FILENAME_RE = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


def safe_filename(name: str) -> str:
    """Strip path separators and control characters from *name*."""
    cleaned = _UNSAFE_FILENAME_RE.sub("_", name).strip(" .")
    return cleaned or "recording"


def _gateway_timeout(settings: Optional[RecorderSettings]) -> float:
    return (settings or RecorderSettings()).flush_timeout_seconds


def _target(directory: str | Path, filename: str, suffix: str) -> Path:
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    return directory / f"{safe_filename(filename)}{suffix}"


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def export_csv(
    points: Sequence[DataPoint],
    filename: str,
    directory: str | Path = ".",
    parameters: Optional[Sequence[str]] = None,
) -> Path:
    """Write *points* to ``<directory>/<filename>.csv`` and return the path."""
    content = encode_csv(points, parameters)
    path = _target(directory, filename, ".csv")
    path.write_text(content, encoding="utf-8")
    logger.info("csv_exported", path=str(path), points=len(points))
    return path


def export_brc(
    points: Sequence[DataPoint],
    filename: str,
    metadata: Optional[Mapping[str, Any]] = None,
    directory: str | Path = ".",
) -> Path:
    """Write *points* to ``<directory>/<filename>.brc`` and return the path."""
    content = encode_brc(points, metadata)
    path = _target(directory, filename, ".brc")
    path.write_text(content, encoding="utf-8")
    logger.info("brc_exported", path=str(path), points=len(points))
    return path


async def export_recording(
    gateway: PersistenceGateway,
    recording: Recording,
    fmt: ExportFormat,
    directory: str | Path = ".",
    parameters: Optional[Sequence[str]] = None,
    *,
    settings: Optional[RecorderSettings] = None,
) -> Path:
    """Fetch a finished recording's points and export them.

    The file is named after the recording.  BRC metadata carries the
    vehicle id followed by the recording's own metadata.  The fetch is
    bounded by ``flush_timeout_seconds``; failures raise
    :class:`PersistenceError`.
    """
    if recording.is_active:
        raise ExportError(
            f"Recording {recording.id} is still being captured; stop it first"
        )
    points = await call_gateway(
        gateway.fetch_points(recording.id),
        timeout=_gateway_timeout(settings),
        operation="fetch_points",
    )
    if fmt == "csv":
        return export_csv(points, recording.name, directory, parameters)
    if fmt == "brc":
        metadata = {"vehicleId": recording.vehicle_id, **recording.metadata}
        return export_brc(points, recording.name, metadata, directory)
    raise ValueError(f"Unsupported export format {fmt!r}")


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

def _read(path: str | Path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidFormatError(f"{path} is not UTF-8 text") from exc


def import_csv(path: str | Path) -> List[DataPoint]:
    return decode_csv(_read(path))


def import_brc(path: str | Path) -> List[DataPoint]:
    return decode_brc(_read(path))


def import_file(path: str | Path) -> List[DataPoint]:
    """Import a ``.csv`` or ``.brc`` file, dispatching on the suffix."""
    suffix = Path(path).suffix.lower()
    if suffix == ".csv":
        points = import_csv(path)
    elif suffix == ".brc":
        points = import_brc(path)
    else:
        raise InvalidFormatError(
            f"Unsupported file type {suffix or '(none)'!r}; expected .csv or .brc"
        )
    logger.info("file_imported", path=str(path), points=len(points))
    return points


def assign_recording(
    points: Sequence[DataPoint], recording_id: str
) -> List[DataPoint]:
    """Return copies of *points* bound to *recording_id*."""
    return [p.model_copy(update={"recording_id": recording_id}) for p in points]


async def import_into_recording(
    gateway: PersistenceGateway,
    recording_id: str,
    points: Sequence[DataPoint],
    *,
    settings: Optional[RecorderSettings] = None,
) -> int:
    """Persist imported *points* under *recording_id*; return how many."""
    if not points:
        return 0
    await call_gateway(
        gateway.append_batch(recording_id, assign_recording(points, recording_id)),
        timeout=_gateway_timeout(settings),
        operation="append_batch",
    )
    logger.info("points_imported", recording_id=recording_id, points=len(points))
    return len(points)
