from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any
from uuid import uuid4

from loguru import logger

from desk_stream.errors import BackendError, SubscriptionError
from desk_stream.models import Job, JobStatus, StreamEvent, is_terminal, normalize_job_status


class InMemoryJobBackend:
    """Job backend kept entirely in process.

    Each job has an append-only event log fanned out to live subscribers, a
    status record, and each conversation a durable message list. Failure
    hooks (``fail_next_subscribe``, ``break_stream``, ``fail_fetches``,
    ``fail_status_watches``) and ``redeliver`` stand in for an unreliable
    transport.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._logs: dict[str, list[StreamEvent]] = {}
        self._event_subscribers: dict[str, list[asyncio.Queue]] = {}
        self._status_subscribers: dict[str, list[asyncio.Queue]] = {}
        self._messages: dict[str, list[dict[str, Any]]] = {}
        self._sequence = 0
        self._fail_subscribe: set[str] = set()
        self.fail_fetches = 0
        self.fail_status_watches = 0
        self.fail_submit: Exception | None = None
        self.submitted: list[tuple[str, dict[str, Any]]] = []

    # -- backend-side controls -------------------------------------------

    def create_job(self, conversation_id: str, status: str = JobStatus.RUNNING) -> str:
        job_id = f"job-{uuid4().hex[:12]}"
        self._jobs[job_id] = Job(id=job_id, conversation_id=conversation_id, status=normalize_job_status(status))
        self._logs[job_id] = []
        return job_id

    def job(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise BackendError(f"Unknown job: {job_id}")
        return job

    def publish(self, job_id: str, event_type: str, payload: dict[str, Any] | None = None, *, event_id: str | None = None) -> StreamEvent:
        self.job(job_id)
        self._sequence += 1
        event = StreamEvent(
            id=event_id or f"evt-{uuid4().hex[:12]}",
            sequence=float(self._sequence),
            type=event_type,
            payload=dict(payload or {}),
        )
        self._logs[job_id].append(event)
        for queue in self._event_subscribers.get(job_id, []):
            queue.put_nowait(event)
        return event

    def redeliver(self, job_id: str, event: StreamEvent) -> None:
        """Deliver an already-logged event again, as an at-least-once transport may."""
        for queue in self._event_subscribers.get(job_id, []):
            queue.put_nowait(event)

    def break_stream(self, job_id: str, reason: str = "connection lost") -> None:
        for queue in self._event_subscribers.get(job_id, []):
            queue.put_nowait(SubscriptionError(reason))

    def fail_next_subscribe(self, job_id: str) -> None:
        self._fail_subscribe.add(job_id)

    def set_status(self, job_id: str, status: str) -> None:
        job = self.job(job_id)
        status = normalize_job_status(status)
        if is_terminal(job.status):
            raise BackendError(f"Job {job_id} is already {job.status}")
        self._jobs[job_id] = Job(id=job.id, conversation_id=job.conversation_id, status=status)
        for queue in self._status_subscribers.get(job_id, []):
            queue.put_nowait(status)

    def save_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        *,
        tool_calls: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        message: dict[str, Any] = {
            "id": f"msg-{uuid4().hex[:12]}",
            "role": role,
            "content": content,
        }
        if tool_calls:
            message["toolCalls"] = list(tool_calls)
        self._messages.setdefault(conversation_id, []).append(message)
        return message

    def subscriber_count(self, job_id: str) -> int:
        return len(self._event_subscribers.get(job_id, [])) + len(self._status_subscribers.get(job_id, []))

    # -- JobBackend ------------------------------------------------------

    async def submit_turn(self, conversation_id: str, payload: dict[str, Any]) -> str:
        if self.fail_submit is not None:
            raise self.fail_submit
        self.submitted.append((conversation_id, dict(payload)))
        self.save_message(conversation_id, "user", str(payload.get("message", "")))
        job_id = self.create_job(conversation_id, JobStatus.QUEUED)
        logger.debug(f"Queued job {job_id} for conversation {conversation_id}")
        return job_id

    async def subscribe_events(self, job_id: str) -> AsyncIterator[StreamEvent]:
        if job_id in self._fail_subscribe:
            self._fail_subscribe.discard(job_id)
            raise SubscriptionError(f"Could not subscribe to job {job_id}")
        self.job(job_id)

        queue: asyncio.Queue = asyncio.Queue()
        for event in self._logs[job_id]:
            queue.put_nowait(event)
        subscribers = self._event_subscribers.setdefault(job_id, [])
        subscribers.append(queue)
        try:
            while True:
                item = await queue.get()
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            subscribers.remove(queue)

    async def watch_job_status(self, job_id: str) -> AsyncIterator[str]:
        if self.fail_status_watches > 0:
            self.fail_status_watches -= 1
            raise BackendError(f"Status record for job {job_id} unavailable")
        job = self.job(job_id)
        queue: asyncio.Queue = asyncio.Queue()
        subscribers = self._status_subscribers.setdefault(job_id, [])
        subscribers.append(queue)
        try:
            yield job.status
            if is_terminal(job.status):
                return
            while True:
                status = await queue.get()
                yield status
                if is_terminal(status):
                    return
        finally:
            subscribers.remove(queue)

    async def fetch_messages_page(self, conversation_id: str, page: int, page_size: int) -> list[dict[str, Any]]:
        if self.fail_fetches > 0:
            self.fail_fetches -= 1
            raise BackendError("Message store unavailable")
        messages = self._messages.get(conversation_id, [])
        start = (max(1, page) - 1) * page_size
        return [dict(m) for m in messages[start : start + page_size]]

    async def fetch_active_job(self, conversation_id: str) -> str | None:
        active = [
            job for job in self._jobs.values()
            if job.conversation_id == conversation_id and not is_terminal(job.status)
        ]
        return active[-1].id if active else None
