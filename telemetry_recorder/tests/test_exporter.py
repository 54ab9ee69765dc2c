"""Tests for telemetry_recorder.exporter -- file export / import."""

from __future__ import annotations

import asyncio
import json

import pytest

from telemetry_recorder.config import RecorderSettings
from telemetry_recorder.errors import (
    EmptyExportError,
    ExportError,
    InvalidFormatError,
    PersistenceError,
)
from telemetry_recorder.exporter import (
    assign_recording,
    export_brc,
    export_csv,
    export_recording,
    import_file,
    import_into_recording,
    safe_filename,
)
from telemetry_recorder.schemas import RecordingStatus, RecordingUpdate


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Morning run", "Morning run"),
        ("a/b\\c", "a_b_c"),
        ("what?:*", "what_"),
        ("  ..  ", "recording"),
    ],
)
def test_safe_filename(name: str, expected: str) -> None:
    assert safe_filename(name) == expected


def test_export_csv_writes_file(tmp_path, make_points) -> None:
    points = make_points(3)
    path = export_csv(points, "drive", directory=tmp_path)

    assert path == tmp_path / "drive.csv"
    lines = path.read_text(encoding="utf-8").split("\n")
    assert lines[0] == "timestamp,rpm"
    assert len(lines) == 4


def test_export_creates_directory(tmp_path, make_points) -> None:
    target = tmp_path / "exports" / "2024"
    path = export_brc(make_points(1), "drive", directory=target)
    assert path.parent == target
    assert path.exists()


def test_export_empty_writes_nothing(tmp_path) -> None:
    with pytest.raises(EmptyExportError):
        export_csv([], "drive", directory=tmp_path)
    assert not (tmp_path / "drive.csv").exists()


def test_brc_file_round_trip(tmp_path, make_points) -> None:
    points = make_points(4, params=lambda i: {"rpm": i * 10, "mode": "idle", "v": i / 4})
    path = export_brc(points, "drive", {"vehicleId": "V1"}, directory=tmp_path)

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["metadata"] == {"vehicleId": "V1"}

    restored = import_file(path)
    assert [p.timestamp for p in restored] == [p.timestamp for p in points]
    assert [p.parameters for p in restored] == [p.parameters for p in points]


def test_import_file_dispatches_on_suffix(tmp_path) -> None:
    csv_path = tmp_path / "data.CSV"
    csv_path.write_text("timestamp,rpm\n2024-05-01T12:00:00Z,900", encoding="utf-8")
    (point,) = import_file(csv_path)
    assert point.parameters == {"rpm": 900}


def test_import_file_rejects_unknown_suffix(tmp_path) -> None:
    path = tmp_path / "data.json"
    path.write_text("{}", encoding="utf-8")
    with pytest.raises(InvalidFormatError, match="Unsupported file type"):
        import_file(path)


def test_import_file_rejects_binary(tmp_path) -> None:
    path = tmp_path / "data.csv"
    path.write_bytes(b"\xff\xfe\x00garbage")
    with pytest.raises(InvalidFormatError, match="UTF-8"):
        import_file(path)


def test_assign_recording_copies(make_points) -> None:
    points = make_points(2, recording_id="")
    bound = assign_recording(points, "rec-9")
    assert all(p.recording_id == "rec-9" for p in bound)
    assert all(p.recording_id == "" for p in points)
    assert [p.id for p in bound] == [p.id for p in points]


async def _finished_recording(gateway, make_points, n: int = 3):
    recording = await gateway.create_recording("u1", "V1", "Morning/run")
    await gateway.append_batch(recording.id, make_points(n, recording_id=recording.id))
    return await gateway.update_recording_status(
        recording.id,
        RecordingUpdate(status=RecordingStatus.COMPLETED, data_points_count=n),
    )


@pytest.mark.asyncio
async def test_export_recording_brc(tmp_path, gateway, make_points) -> None:
    recording = await _finished_recording(gateway, make_points)
    path = await export_recording(gateway, recording, "brc", directory=tmp_path)

    assert path.name == "Morning_run.brc"
    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["metadata"]["vehicleId"] == "V1"
    assert document["dataPointsCount"] == 3


@pytest.mark.asyncio
async def test_export_recording_csv_selection(tmp_path, gateway, make_points) -> None:
    recording = await _finished_recording(gateway, make_points)
    path = await export_recording(
        gateway, recording, "csv", directory=tmp_path, parameters=["rpm"]
    )
    assert path.read_text(encoding="utf-8").startswith("timestamp,rpm\n")


@pytest.mark.asyncio
async def test_export_active_recording_rejected(tmp_path, gateway) -> None:
    recording = await gateway.create_recording("u1", "V1", "Live")
    with pytest.raises(ExportError, match="still being captured"):
        await export_recording(gateway, recording, "csv", directory=tmp_path)


@pytest.mark.asyncio
async def test_export_unknown_format(tmp_path, gateway, make_points) -> None:
    recording = await _finished_recording(gateway, make_points)
    with pytest.raises(ValueError, match="Unsupported export format"):
        await export_recording(gateway, recording, "xlsx", directory=tmp_path)


@pytest.mark.asyncio
async def test_import_into_recording(gateway, make_points) -> None:
    recording = await gateway.create_recording("u1", "V1", "Imported")
    points = make_points(5, recording_id="")

    assert await import_into_recording(gateway, recording.id, points) == 5
    stored = await gateway.fetch_points(recording.id)
    assert [p.id for p in stored] == [p.id for p in points]
    assert all(p.recording_id == recording.id for p in stored)


@pytest.mark.asyncio
async def test_import_nothing_skips_gateway(gateway) -> None:
    assert await import_into_recording(gateway, "rec-1", []) == 0
    assert gateway.append_calls == 0


@pytest.mark.asyncio
async def test_import_backend_failure_is_persistence_error(
    gateway, make_points, monkeypatch
) -> None:
    async def _down(*args, **kwargs):
        raise ConnectionError("down")

    recording = await gateway.create_recording("u1", "V1", "Imported")
    monkeypatch.setattr(gateway, "append_batch", _down)
    with pytest.raises(PersistenceError, match="append_batch failed"):
        await import_into_recording(gateway, recording.id, make_points(2, recording_id=""))


@pytest.mark.asyncio
async def test_import_stalled_backend_times_out(gateway, make_points) -> None:
    recording = await gateway.create_recording("u1", "V1", "Imported")
    gateway.stall_appends = True
    with pytest.raises(PersistenceError, match="timed out"):
        await import_into_recording(
            gateway,
            recording.id,
            make_points(2, recording_id=""),
            settings=RecorderSettings(flush_timeout_seconds=0.05),
        )


@pytest.mark.asyncio
async def test_export_backend_failure_is_persistence_error(
    tmp_path, gateway, make_points, monkeypatch
) -> None:
    recording = await _finished_recording(gateway, make_points)

    async def _down(recording_id: str):
        raise ConnectionError("down")

    monkeypatch.setattr(gateway, "fetch_points", _down)
    with pytest.raises(PersistenceError, match="fetch_points failed"):
        await export_recording(gateway, recording, "csv", directory=tmp_path)
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_export_stalled_backend_times_out(
    tmp_path, gateway, make_points, monkeypatch
) -> None:
    recording = await _finished_recording(gateway, make_points)

    async def _stall(recording_id: str):
        await asyncio.sleep(3600)

    monkeypatch.setattr(gateway, "fetch_points", _stall)
    with pytest.raises(PersistenceError, match="timed out"):
        await export_recording(
            gateway,
            recording,
            "brc",
            directory=tmp_path,
            settings=RecorderSettings(flush_timeout_seconds=0.05),
        )


@pytest.mark.asyncio
async def test_reimporting_same_points_stores_them_once(gateway, make_points) -> None:
    recording = await gateway.create_recording("u1", "V1", "Imported")
    points = make_points(4, recording_id="")

    await import_into_recording(gateway, recording.id, points)
    await import_into_recording(gateway, recording.id, points)

    assert await gateway.count_points(recording.id) == 4
