"""Tabular view of a recorded point set.

Turns a list of :class:`~telemetry_recorder.schemas.DataPoint` into a
pandas DataFrame (one column per parameter, ``NaN`` where a point did not
carry the parameter) and computes the per-parameter min / max / mean the
recording viewer shows next to each chart line.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Sequence

import numpy as np
import pandas as pd

from telemetry_recorder.codec import collect_parameters
from telemetry_recorder.schemas import DataPoint


@dataclass(frozen=True)
class ParameterSummary:
    """Descriptive statistics for one numeric parameter."""

    min: float
    max: float
    mean: float
    count: int  # points carrying a numeric value

    def to_dict(self) -> Dict[str, Any]:
        return {
            k: (None if isinstance(v, float) and math.isnan(v) else v)
            for k, v in asdict(self).items()
        }


def to_frame(points: Sequence[DataPoint]) -> pd.DataFrame:
    """Return a DataFrame indexed by UTC timestamp.

    Columns follow first-seen parameter order.  String parameters are kept
    as ``object`` columns.
    """
    columns = collect_parameters(points)
    index = pd.DatetimeIndex(
        [p.timestamp for p in points], name="timestamp"
    )
    if index.tz is None:
        index = index.tz_localize("UTC")
    else:
        index = index.tz_convert("UTC")
    rows = [{name: p.parameters.get(name, np.nan) for name in columns} for p in points]
    return pd.DataFrame(rows, index=index, columns=columns)


def summarize(points: Sequence[DataPoint]) -> Dict[str, ParameterSummary]:
    """Min / max / mean per parameter that has at least one numeric value.

    Non-numeric values (strings) are ignored; parameters with no numeric
    value at all are omitted.
    """
    frame = to_frame(points)
    result: Dict[str, ParameterSummary] = {}
    for name in frame.columns:
        values = np.array(
            [v for v in frame[name].to_numpy(dtype=object) if _is_measurement(v)],
            dtype=float,
        )
        if values.size == 0:
            continue
        result[name] = ParameterSummary(
            min=float(np.min(values)),
            max=float(np.max(values)),
            mean=float(np.mean(values)),
            count=int(values.size),
        )
    return result


def _is_measurement(value: Any) -> bool:
    # Strings that merely look numeric are not measurements.
    if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
        return False
    return not math.isnan(float(value))
