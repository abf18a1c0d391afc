from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from desk_stream.errors import BackendError, SubscriptionError
from desk_stream.models import StreamEvent, is_terminal, normalize_job_status

_MAX_PAGE_SIZE = 100


def _on_retry(retry_state):
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"{reason}. Retrying in {wait:.1f}s (attempt {attempt}/3)...")


async def iter_sse_frames(lines: AsyncIterator[str]) -> AsyncIterator[dict[str, Any]]:
    """Decode Server-Sent Events into JSON objects, one per ``data`` frame."""
    data_lines: list[str] = []
    frame_id: str | None = None

    async for line in lines:
        if line == "":
            frame = _decode_frame(data_lines, frame_id)
            if frame is not None:
                yield frame
            data_lines = []
            frame_id = None
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data_lines.append(value)
        elif field == "id":
            frame_id = value

    frame = _decode_frame(data_lines, frame_id)
    if frame is not None:
        yield frame


def _decode_frame(data_lines: list[str], frame_id: str | None) -> dict[str, Any] | None:
    if not data_lines:
        return None
    text = "\n".join(data_lines)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        logger.warning(f"Skipping malformed event frame: {text[:80]!r}")
        return None
    if not isinstance(parsed, dict):
        return None
    if frame_id and not parsed.get("id"):
        parsed["id"] = frame_id
    return parsed


class HttpJobBackend:
    """Job backend over the dashboard's REST API and its job update stream."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str,
        company_id: str | None = None,
        employee_id: str | None = None,
        timeout_seconds: float = 30.0,
        status_poll_interval_seconds: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._company_id = company_id
        self._employee_id = employee_id
        self._timeout_seconds = timeout_seconds
        self._status_poll_interval_seconds = status_poll_interval_seconds
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
            timeout=timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _params(self, **extra: Any) -> dict[str, Any]:
        params = {k: v for k, v in extra.items() if v is not None}
        if self._company_id:
            params["companyId"] = self._company_id
        return params

    @staticmethod
    def _parse(response: httpx.Response) -> dict[str, Any]:
        if response.status_code >= 400:
            detail = ""
            try:
                error = response.json().get("error")
                if isinstance(error, dict):
                    detail = error.get("message", "")
            except (json.JSONDecodeError, ValueError, AttributeError):
                pass
            suffix = f": {detail}" if detail else ""
            raise BackendError(f"HTTP {response.status_code} from {response.request.url.path}{suffix}")
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as ex:
            raise BackendError(f"Invalid JSON from {response.request.url.path}") from ex
        if not isinstance(data, dict):
            raise BackendError(f"Unexpected body from {response.request.url.path}")
        return data

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
        stop=stop_after_attempt(3),
        before_sleep=_on_retry,
        reraise=True,
    )
    async def _get_json(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        logger.debug(f"GET {path} params={params}")
        response = await self._client.get(path, params=params)
        return self._parse(response)

    async def submit_turn(self, conversation_id: str, payload: dict[str, Any]) -> str:
        # Not retried: submitting twice would queue two jobs.
        body = dict(payload)
        if self._company_id:
            body.setdefault("companyId", self._company_id)
        if self._employee_id:
            body.setdefault("employeeId", self._employee_id)
        response = await self._client.post(f"/api/chat/{conversation_id}/jobs", json=body)
        data = self._parse(response)
        job = data.get("job") or {}
        job_id = job.get("id") or data.get("jobId")
        if not job_id:
            raise BackendError("Job submission response is missing a job id")
        return str(job_id)

    async def fetch_active_job(self, conversation_id: str) -> str | None:
        data = await self._get_json(f"/api/chat/{conversation_id}/active-job", self._params())
        active = data.get("activeJob")
        if not active or not active.get("id"):
            return None
        if is_terminal(active.get("status", "")):
            return None
        return str(active["id"])

    async def fetch_messages_page(self, conversation_id: str, page: int, page_size: int) -> list[dict[str, Any]]:
        params = self._params(page=max(1, page), limit=max(1, min(_MAX_PAGE_SIZE, page_size)))
        data = await self._get_json(f"/api/chat/{conversation_id}/messages/list", params)
        return list(data.get("messages") or [])

    async def fetch_job_status(self, job_id: str) -> str:
        data = await self._get_json(f"/api/chat/jobs/{job_id}", self._params())
        job = data.get("job") or data
        return normalize_job_status(job.get("status"))

    async def watch_job_status(self, job_id: str) -> AsyncIterator[str]:
        last_status: str | None = None
        while True:
            status = await self.fetch_job_status(job_id)
            if status != last_status:
                last_status = status
                yield status
            if is_terminal(status):
                return
            await asyncio.sleep(self._status_poll_interval_seconds)

    async def subscribe_events(self, job_id: str) -> AsyncIterator[StreamEvent]:
        path = f"/api/chat/jobs/{job_id}/updates/stream"
        timeout = httpx.Timeout(self._timeout_seconds, read=None)
        try:
            async with self._client.stream(
                "GET",
                path,
                params=self._params(),
                headers={"Accept": "text/event-stream"},
                timeout=timeout,
            ) as response:
                if response.status_code >= 400:
                    raise SubscriptionError(f"HTTP {response.status_code} opening event stream for job {job_id}")
                async for frame in iter_sse_frames(response.aiter_lines()):
                    yield StreamEvent.from_dict(frame, job_id=job_id)
        except httpx.HTTPError as ex:
            raise SubscriptionError(f"Event stream for job {job_id} broke: {ex}") from ex
