"""Gateway backed by a PostgREST (Supabase) HTTP API.

Tables:
* ``data_recordings``       -- one row per recording.
* ``recording_data_points`` -- one row per point (``recording_id``,
  ``timestamp``, ``parameters`` JSON).

Features:
* Exponential-backoff retry on 5xx / network errors.
* 4xx responses fail immediately (retrying won't help).
* Exact counts via ``Prefer: count=exact`` and ``Content-Range``.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import httpx
import structlog

from telemetry_recorder.config import RecorderSettings
from telemetry_recorder.errors import PersistenceError
from telemetry_recorder.gateway.base import PersistenceGateway
from telemetry_recorder.schemas import DataPoint, Recording, RecordingUpdate

logger = structlog.get_logger(__name__)

_RECORDINGS_PATH = "/rest/v1/data_recordings"
_POINTS_PATH = "/rest/v1/recording_data_points"
_UPSERT_IGNORE_DUPLICATES = "resolution=ignore-duplicates,return=minimal"


class RestGateway(PersistenceGateway):
    """Talks to the recording tables through PostgREST."""

    def __init__(
        self,
        settings: RecorderSettings,
        *,
        backoff_base: float = 1.0,
    ) -> None:
        self._base_url = settings.backend_url.rstrip("/")
        self._api_key = settings.backend_api_key
        self._timeout = settings.request_timeout_seconds
        self._max_retries = settings.max_retry_attempts
        self._backoff_base = backoff_base
        self._client: httpx.AsyncClient | None = None

    # -- lifecycle ------------------------------------------------------------

    async def start(self) -> None:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["Authorization"] = f"Bearer {self._api_key}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=headers,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RestGateway":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # -- recordings -----------------------------------------------------------

    async def create_recording(
        self, user_id: str, vehicle_id: str, name: str
    ) -> Recording:
        response = await self._request(
            "POST",
            _RECORDINGS_PATH,
            json={
                "user_id": user_id,
                "vehicle_id": vehicle_id,
                "name": name,
                "status": "recording",
            },
            prefer="return=representation",
        )
        return Recording.model_validate(_single_row(response, "create_recording"))

    async def get_recording(self, recording_id: str) -> Recording:
        response = await self._request(
            "GET",
            _RECORDINGS_PATH,
            params={"id": f"eq.{recording_id}", "select": "*"},
        )
        return Recording.model_validate(_single_row(response, "get_recording"))

    async def list_recordings(
        self, user_id: str, vehicle_id: Optional[str] = None
    ) -> List[Recording]:
        params = {
            "user_id": f"eq.{user_id}",
            "select": "*",
            "order": "created_at.desc",
        }
        if vehicle_id:
            params["vehicle_id"] = f"eq.{vehicle_id}"
        response = await self._request("GET", _RECORDINGS_PATH, params=params)
        return [Recording.model_validate(row) for row in response.json()]

    async def update_recording_status(
        self, recording_id: str, update: RecordingUpdate
    ) -> Recording:
        response = await self._request(
            "PATCH",
            _RECORDINGS_PATH,
            params={"id": f"eq.{recording_id}"},
            json=update.to_fields(),
            prefer="return=representation",
        )
        return Recording.model_validate(
            _single_row(response, "update_recording_status")
        )

    async def rename_recording(self, recording_id: str, name: str) -> None:
        await self._request(
            "PATCH",
            _RECORDINGS_PATH,
            params={"id": f"eq.{recording_id}"},
            json={"name": name},
            prefer="return=minimal",
        )

    async def delete_recording(self, recording_id: str) -> None:
        # Points first so a failure never leaves orphaned point rows.
        await self.delete_points(recording_id)
        await self._request(
            "DELETE",
            _RECORDINGS_PATH,
            params={"id": f"eq.{recording_id}"},
            prefer="return=minimal",
        )
        logger.info("recording_deleted", recording_id=recording_id)

    # -- points ---------------------------------------------------------------

    async def append_batch(
        self, recording_id: str, points: Sequence[DataPoint]
    ) -> None:
        """Insert *points*, skipping rows whose id is already stored.

        Point ids are sent with each row so a retried request that
        already landed does not insert duplicates.
        """
        rows = [
            {
                "id": p.id,
                "recording_id": recording_id,
                "timestamp": p.model_dump(mode="json")["timestamp"],
                "parameters": p.parameters,
            }
            for p in points
        ]
        await self._request(
            "POST", _POINTS_PATH, json=rows, prefer=_UPSERT_IGNORE_DUPLICATES
        )

    async def count_points(self, recording_id: str) -> int:
        response = await self._request(
            "HEAD",
            _POINTS_PATH,
            params={"recording_id": f"eq.{recording_id}", "select": "id"},
            prefer="count=exact",
        )
        return _content_range_total(response)

    async def fetch_points(self, recording_id: str) -> List[DataPoint]:
        response = await self._request(
            "GET",
            _POINTS_PATH,
            params={
                "recording_id": f"eq.{recording_id}",
                "select": "*",
                "order": "timestamp.asc",
            },
        )
        return [DataPoint.model_validate(row) for row in response.json()]

    async def delete_points(self, recording_id: str) -> int:
        response = await self._request(
            "DELETE",
            _POINTS_PATH,
            params={"recording_id": f"eq.{recording_id}"},
            prefer="return=minimal,count=exact",
        )
        return _content_range_total(response)

    # -- internal -------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> httpx.Response:
        """Send a request with exponential backoff on retryable failures."""
        if self._client is None:
            raise RuntimeError("RestGateway.start() must be called before use")

        headers = {"Prefer": prefer} if prefer else None

        for attempt in range(1, self._max_retries + 1):
            try:
                response = await self._client.request(
                    method, path, params=params, json=json, headers=headers
                )

                if 400 <= response.status_code < 500:
                    logger.error(
                        "backend_client_error",
                        method=method,
                        path=path,
                        status=response.status_code,
                        body=response.text[:500],
                    )
                    raise PersistenceError(
                        f"{method} {path} rejected with HTTP {response.status_code}"
                    )

                response.raise_for_status()
                return response

            except httpx.HTTPStatusError as exc:
                wait = self._backoff_base * 2 ** (attempt - 1)
                logger.warning(
                    "backend_server_error",
                    method=method,
                    path=path,
                    attempt=attempt,
                    max_retries=self._max_retries,
                    status=exc.response.status_code,
                    retry_in=wait,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(wait)

            except httpx.RequestError as exc:
                wait = self._backoff_base * 2 ** (attempt - 1)
                logger.warning(
                    "backend_network_error",
                    method=method,
                    path=path,
                    attempt=attempt,
                    max_retries=self._max_retries,
                    error=str(exc),
                    retry_in=wait,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(wait)

        raise PersistenceError(
            f"{method} {path} failed after {self._max_retries} attempts"
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _single_row(response: httpx.Response, operation: str) -> Dict[str, Any]:
    rows = response.json()
    if not rows:
        raise PersistenceError(f"{operation}: backend returned no row")
    return rows[0]


def _content_range_total(response: httpx.Response) -> int:
    """Extract the total from a ``Content-Range: 0-9/42`` header."""
    header = response.headers.get("content-range", "")
    _, _, total = header.partition("/")
    if not total or total == "*":
        raise PersistenceError(
            f"Backend returned no exact count (Content-Range: {header!r})"
        )
    try:
        return int(total)
    except ValueError:
        raise PersistenceError(f"Malformed Content-Range: {header!r}") from None
