"""
HTTP client for the schedule query endpoints.

Failures on the network path, including 5xx answers and malformed
payloads, are reported as TransientFetchError and may be retried. A
query the server rejects outright (404 unknown channel, 422 bad count)
raises RejectedQueryError, which retrying cannot fix.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from cyclecast.errors import RejectedQueryError, TransientFetchError
from cyclecast.utils.time_format import now_ms

logger = logging.getLogger(__name__)

REJECTED_STATUS_CODES = (404, 422)


@dataclass(frozen=True)
class RemoteProgram:
    """A program as described by the server."""

    id: str
    media_ref: str
    title: str
    duration_seconds: int

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "RemoteProgram":
        return cls(
            id=str(data["id"]),
            media_ref=str(data["media_ref"]),
            title=str(data.get("title", "")),
            duration_seconds=int(data["duration"]),
        )


@dataclass(frozen=True)
class FetchedPosition:
    """
    A CurrentPosition answer plus the local instants around the request.

    ``local_request_ms`` is taken just before the request is sent and is
    the reference for clock-skew estimation.
    """

    channel_id: str
    program: RemoteProgram
    program_index: int
    offset_seconds: int
    remaining_seconds: int
    next_program_start_ms: int
    total_programs: int
    schedule_version: str
    server_timestamp_ms: int
    local_request_ms: int
    local_response_ms: int

    @property
    def clock_skew_ms(self) -> int:
        """Server clock minus local clock at request time."""
        return self.server_timestamp_ms - self.local_request_ms


class ScheduleClient:
    """
    Async client for ``/api/schedule/current`` and ``/api/schedule/upcoming``.

    Pass ``transport`` to route requests somewhere other than the network
    (``httpx.MockTransport`` or ``httpx.ASGITransport``).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.clock = clock or now_ms
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Cache-Control": "no-cache"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ScheduleClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @staticmethod
    def _detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if isinstance(body, dict) and body.get("detail"):
            return str(body["detail"])
        return f"HTTP {response.status_code}"

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise TransientFetchError(f"Request to {path} failed: {e}") from e

        if response.status_code in REJECTED_STATUS_CODES:
            raise RejectedQueryError(
                f"{path} rejected the query: {self._detail(response)}",
                status_code=response.status_code,
            )

        if response.status_code != 200:
            raise TransientFetchError(
                f"{path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise TransientFetchError(f"{path} returned invalid JSON") from e

        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            raise TransientFetchError(
                f"{path} reported failure: {error or 'unknown error'}",
                status_code=response.status_code,
            )
        return body

    async def fetch_current(self, channel_id: Optional[str] = None) -> FetchedPosition:
        """Fetch the current on-air position of a channel."""
        params = {"channel": channel_id} if channel_id else {}
        local_request_ms = self.clock()
        body = await self._get("/api/schedule/current", params)
        local_response_ms = self.clock()

        try:
            data = body["data"]
            return FetchedPosition(
                channel_id=str(data["channel_id"]),
                program=RemoteProgram.from_payload(data["program"]),
                program_index=int(data["program_index"]),
                offset_seconds=int(data["current_time"]),
                remaining_seconds=int(data["time_remaining"]),
                next_program_start_ms=int(data["next_program_start_time"]),
                total_programs=int(data["total_programs"]),
                schedule_version=str(data["schedule_version"]),
                server_timestamp_ms=int(body["server_timestamp"]),
                local_request_ms=local_request_ms,
                local_response_ms=local_response_ms,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise TransientFetchError(f"Malformed current-position payload: {e}") from e

    async def fetch_upcoming(
        self,
        channel_id: Optional[str] = None,
        count: int = 15,
    ) -> dict[str, Any]:
        """Fetch the raw upcoming-programs payload."""
        params: dict[str, Any] = {"count": count}
        if channel_id:
            params["channel"] = channel_id
        body = await self._get("/api/schedule/upcoming", params)
        return body["data"]
