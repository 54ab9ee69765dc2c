"""Tests for telemetry_recorder.series -- DataFrame view and summaries."""

from __future__ import annotations

import json
import math
from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from telemetry_recorder.schemas import DataPoint
from telemetry_recorder.series import ParameterSummary, summarize, to_frame

_T = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _points():
    return [
        DataPoint(timestamp=_T, parameters={"rpm": 800, "status": "Closed loop"}),
        DataPoint(
            timestamp=_T + timedelta(seconds=1),
            parameters={"rpm": 1200, "coolant": 88.5},
        ),
        DataPoint(
            timestamp=_T + timedelta(seconds=2),
            parameters={"rpm": 1000, "coolant": 90.5, "status": "Open loop"},
        ),
    ]


class TestToFrame:
    def test_shape_and_columns(self) -> None:
        df = to_frame(_points())
        assert list(df.columns) == ["rpm", "status", "coolant"]
        assert len(df) == 3

    def test_index_is_utc_timestamp(self) -> None:
        df = to_frame(_points())
        assert df.index.name == "timestamp"
        assert str(df.index.tz) == "UTC"
        assert df.index[0] == pd.Timestamp(_T)

    def test_absent_parameters_are_nan(self) -> None:
        df = to_frame(_points())
        assert math.isnan(df["coolant"].iloc[0])
        assert pd.isna(df["status"].iloc[1])
        assert df["status"].iloc[2] == "Open loop"

    def test_empty(self) -> None:
        df = to_frame([])
        assert df.empty
        assert list(df.columns) == []


class TestSummarize:
    def test_numeric_parameters_only(self) -> None:
        stats = summarize(_points())
        assert set(stats) == {"rpm", "coolant"}

    def test_min_max_mean(self) -> None:
        stats = summarize(_points())
        assert stats["rpm"] == ParameterSummary(min=800.0, max=1200.0, mean=1000.0, count=3)
        assert stats["coolant"].mean == pytest.approx(89.5)
        assert stats["coolant"].count == 2

    def test_numeric_looking_strings_ignored(self) -> None:
        points = [
            DataPoint(timestamp=_T, parameters={"code": "42", "v": 1}),
            DataPoint(timestamp=_T + timedelta(seconds=1), parameters={"v": 3.0}),
        ]
        stats = summarize(points)
        assert "code" not in stats
        assert stats["v"].mean == 2.0

    def test_mixed_column_uses_numeric_values(self) -> None:
        points = [
            DataPoint(timestamp=_T, parameters={"speed": 10}),
            DataPoint(timestamp=_T + timedelta(seconds=1), parameters={"speed": "n/a"}),
            DataPoint(timestamp=_T + timedelta(seconds=2), parameters={"speed": 30}),
        ]
        assert summarize(points)["speed"].count == 2

    def test_duplicate_timestamps(self) -> None:
        points = [
            DataPoint(timestamp=_T, parameters={"rpm": 1}),
            DataPoint(timestamp=_T, parameters={"rpm": 3}),
        ]
        assert summarize(points)["rpm"].max == 3.0

    def test_empty(self) -> None:
        assert summarize([]) == {}

    def test_summary_frozen_and_serialisable(self) -> None:
        summary = summarize(_points())["rpm"]
        with pytest.raises(FrozenInstanceError):
            summary.min = 0.0  # type: ignore[misc]
        assert json.loads(json.dumps(summary.to_dict())) == {
            "min": 800.0,
            "max": 1200.0,
            "mean": 1000.0,
            "count": 3,
        }
