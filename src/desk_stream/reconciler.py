from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger
from tenacity import AsyncRetrying, stop_after_attempt, wait_fixed

from desk_stream.backend import JobBackend
from desk_stream.converter import messages_to_items
from desk_stream.models import ConversationItem


def _on_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"Reconciliation fetch failed ({reason}); retrying (attempt {retry_state.attempt_number})")


class Reconciler:
    """Replaces streamed state with the durable message store's record."""

    def __init__(
        self,
        backend: JobBackend,
        *,
        page_size: int = 100,
        max_pages: int = 10,
        delay_seconds: float = 0.5,
        max_attempts: int = 2,
    ):
        self._backend = backend
        self._page_size = max(1, page_size)
        self._max_pages = max(1, max_pages)
        self._delay_seconds = max(0.0, delay_seconds)
        self._max_attempts = max(1, max_attempts)

    async def fetch_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        for page in range(1, self._max_pages + 1):
            batch = await self._backend.fetch_messages_page(conversation_id, page, self._page_size)
            messages.extend(batch)
            if len(batch) < self._page_size:
                break
        return messages

    async def reconcile(self, conversation_id: str) -> list[ConversationItem] | None:
        """Fetch the canonical item list, or ``None`` if the store stayed unreachable.

        Waits briefly first: the backend may still be committing the final
        message when the job status flips.
        """
        await asyncio.sleep(self._delay_seconds)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_fixed(self._delay_seconds),
                before_sleep=_on_retry,
                reraise=True,
            ):
                with attempt:
                    messages = await self.fetch_messages(conversation_id)
        except Exception as ex:
            logger.warning(f"Reconciliation for conversation {conversation_id} gave up: {ex}")
            return None

        logger.debug(f"Reconciled conversation {conversation_id}: {len(messages)} stored message(s)")
        return messages_to_items(messages)
