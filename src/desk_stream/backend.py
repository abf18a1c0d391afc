from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable

from desk_stream.models import StreamEvent


@runtime_checkable
class JobBackend(Protocol):
    async def submit_turn(self, conversation_id: str, payload: dict[str, Any]) -> str:
        """Queue a conversation turn and return the new job id."""
        ...

    def subscribe_events(self, job_id: str) -> AsyncIterator[StreamEvent]:
        """Yield the job's events in ascending sequence order.

        Raising from the iterator is the subscription's single error signal;
        the subscription is dead afterwards. Cancelling the consuming task
        unsubscribes.
        """
        ...

    def watch_job_status(self, job_id: str) -> AsyncIterator[str]:
        """Yield the current job status, then every change, ending after a terminal one."""
        ...

    async def fetch_messages_page(self, conversation_id: str, page: int, page_size: int) -> list[dict[str, Any]]:
        """Return one page (1-based) of durable messages, oldest first."""
        ...

    async def fetch_active_job(self, conversation_id: str) -> str | None:
        """Return the id of the conversation's non-terminal job, if any."""
        ...
