"""Pure conversions between point sets and the two interchange formats.

CSV
    ``timestamp,<p1>,<p2>,...`` header, one row per point, UTF-8, comma
    separated, **no quoting**.  Timestamps are ISO-8601 UTC with
    milliseconds (``2024-05-01T12:00:00.250Z``).  A parameter absent on a
    point is an empty field.  On import, numeric-looking fields become
    ``int`` / ``float`` and everything else stays a string -- so a string
    parameter such as ``"42"`` comes back as the number ``42``.  That
    lossy round-trip is part of the format contract.

BRC
    UTF-8 JSON envelope with top-level keys ``version, format, exportedAt,
    metadata, dataPointsCount, parameters, data``; each ``data`` entry is
    ``{"t": <epoch ms>, "p": {...}}``.  Lossless for timestamps and value
    types.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import structlog
from pydantic import ValidationError

from telemetry_recorder.errors import EmptyExportError, InvalidFormatError
from telemetry_recorder.schemas import (
    BRCEnvelope,
    BRCSample,
    DataPoint,
    ParameterValue,
    truncate_to_millis,
    utc_now,
)

logger = structlog.get_logger(__name__)

TIMESTAMP_COLUMN = "timestamp"
BRC_FORMAT = "BRC"
BRC_VERSION = "1.0"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)
_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------

def format_timestamp(ts: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    ts = truncate_to_millis(ts)
    return f"{ts:%Y-%m-%dT%H:%M:%S}.{ts.microsecond // 1000:03d}Z"


def parse_timestamp(text: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    cleaned = text.strip()
    if cleaned[-1:] in ("Z", "z"):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        return truncate_to_millis(datetime.fromisoformat(cleaned))
    except ValueError:
        raise InvalidFormatError(f"Invalid timestamp {text!r}") from None


def to_epoch_millis(ts: datetime) -> int:
    return (truncate_to_millis(ts) - _EPOCH) // _ONE_MS


def from_epoch_millis(millis: int) -> datetime:
    return _EPOCH + millis * _ONE_MS


def parse_scalar(text: str) -> ParameterValue:
    """Numeric-looking text becomes ``int`` / ``float``; anything else is kept."""
    candidate = text.strip()
    if _INT_RE.match(candidate):
        return int(candidate)
    if _FLOAT_RE.match(candidate):
        return float(candidate)
    return text


def collect_parameters(points: Iterable[DataPoint]) -> List[str]:
    """Union of parameter keys across *points*, in first-seen order."""
    seen: Dict[str, None] = {}
    for point in points:
        for key in point.parameters:
            seen.setdefault(key, None)
    return list(seen)


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def encode_csv(
    points: Sequence[DataPoint],
    parameters: Optional[Sequence[str]] = None,
) -> str:
    """Render *points* as CSV text.

    *parameters* optionally selects (and orders) the exported columns;
    names that never occur in *points* are ignored.  With no selection
    every observed parameter is exported.
    """
    if not points:
        raise EmptyExportError("No data points to export")

    observed = collect_parameters(points)
    if parameters:
        available = set(observed)
        columns = [name for name in dict.fromkeys(parameters) if name in available]
    else:
        columns = observed

    _warn_on_delimiters(columns, points)

    lines = [",".join([TIMESTAMP_COLUMN, *columns])]
    for point in points:
        fields = [format_timestamp(point.timestamp)]
        for name in columns:
            value = point.parameters.get(name)
            fields.append("" if value is None else str(value))
        lines.append(",".join(fields))
    return "\n".join(lines)


def decode_csv(content: str) -> List[DataPoint]:
    """Parse CSV text into fresh, unbound points.

    The ``timestamp`` column is located case-insensitively; every other
    column becomes a parameter.  Empty fields are omitted.
    """
    lines = [
        line.rstrip("\r")
        for line in content.lstrip("\ufeff").split("\n")
        if line.strip()
    ]
    if not lines:
        raise InvalidFormatError("CSV content is empty")

    headers = [name.strip() for name in lines[0].split(",")]
    ts_index = next(
        (i for i, name in enumerate(headers) if name.lower() == TIMESTAMP_COLUMN),
        None,
    )
    if ts_index is None:
        raise InvalidFormatError("CSV header has no 'timestamp' column")

    points: List[DataPoint] = []
    for line_no, line in enumerate(lines[1:], start=2):
        values = line.split(",")
        if ts_index >= len(values) or not values[ts_index].strip():
            raise InvalidFormatError(f"Line {line_no}: missing timestamp")
        try:
            timestamp = parse_timestamp(values[ts_index])
        except InvalidFormatError as exc:
            raise InvalidFormatError(f"Line {line_no}: {exc}") from None

        row: Dict[str, ParameterValue] = {}
        for i, name in enumerate(headers):
            if i == ts_index or i >= len(values) or values[i] == "":
                continue
            row[name] = parse_scalar(values[i])
        points.append(DataPoint(timestamp=timestamp, parameters=row))
    return points


def _warn_on_delimiters(columns: Sequence[str], points: Sequence[DataPoint]) -> None:
    """Log columns whose names or values contain the CSV delimiter."""
    flagged = {name for name in columns if "," in name}
    for point in points:
        for name in columns:
            value = point.parameters.get(name)
            if isinstance(value, str) and ("," in value or "\n" in value):
                flagged.add(name)
    if flagged:
        logger.warning(
            "csv_unquoted_delimiter",
            parameters=sorted(flagged),
            hint="values are not quoted; re-import will split these fields",
        )


# ---------------------------------------------------------------------------
# BRC
# ---------------------------------------------------------------------------

def encode_brc(
    points: Sequence[DataPoint],
    metadata: Optional[Mapping[str, Any]] = None,
    exported_at: Optional[datetime] = None,
) -> str:
    """Render *points* as a BRC JSON document."""
    if not points:
        raise EmptyExportError("No data points to export")

    envelope = BRCEnvelope(
        version=BRC_VERSION,
        format=BRC_FORMAT,
        exported_at=format_timestamp(exported_at or utc_now()),
        metadata=dict(metadata or {}),
        data_points_count=len(points),
        parameters=collect_parameters(points),
        data=[
            BRCSample(t=to_epoch_millis(p.timestamp), p=dict(p.parameters))
            for p in points
        ],
    )
    return json.dumps(
        envelope.model_dump(mode="json", by_alias=True),
        indent=2,
        ensure_ascii=False,
    )


def decode_brc(content: Union[str, bytes]) -> List[DataPoint]:
    """Parse a BRC document into fresh, unbound points."""
    try:
        document = json.loads(content)
    except (TypeError, ValueError) as exc:
        raise InvalidFormatError("BRC content is not valid JSON") from exc

    if not isinstance(document, dict) or document.get("format") != BRC_FORMAT:
        raise InvalidFormatError("Not a BRC document (format must be 'BRC')")
    data = document.get("data")
    if not isinstance(data, list):
        raise InvalidFormatError("BRC 'data' must be an array")

    points: List[DataPoint] = []
    for index, item in enumerate(data):
        try:
            sample = BRCSample.model_validate(item)
            timestamp = from_epoch_millis(sample.t)
        except ValidationError as exc:
            raise InvalidFormatError(
                f"Malformed BRC sample at data[{index}]"
            ) from exc
        except OverflowError as exc:
            raise InvalidFormatError(
                f"BRC sample at data[{index}] has an out-of-range time"
            ) from exc
        points.append(DataPoint(timestamp=timestamp, parameters=sample.p))
    return points
