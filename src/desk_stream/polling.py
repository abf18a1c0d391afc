from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger


class PollingState:
    IDLE = "idle"
    POLLING = "polling"
    STOPPED_BY_COMPLETION = "stopped-by-completion"
    STOPPED_BY_BUDGET = "stopped-by-budget"


class PollingFallbackSupervisor:
    """Re-fetches a conversation on a fixed interval when streaming is unavailable.

    A turn counts as done once the newest stored message is from the
    assistant and at least ``min_attempts_before_complete`` polls have run,
    so an assistant reply from the previous turn is not mistaken for this one.
    """

    def __init__(
        self,
        *,
        fetch_messages: Callable[[], Awaitable[list[dict[str, Any]]]],
        on_refresh: Callable[[list[dict[str, Any]]], None],
        interval_seconds: float = 2.0,
        max_attempts: int = 90,
        min_attempts_before_complete: int = 2,
    ):
        self._fetch_messages = fetch_messages
        self._on_refresh = on_refresh
        self._interval_seconds = max(0.0, interval_seconds)
        self._max_attempts = max(1, max_attempts)
        self._min_attempts_before_complete = max(1, min_attempts_before_complete)
        self.state = PollingState.IDLE
        self.attempts = 0

    @property
    def is_stopped(self) -> bool:
        return self.state in (PollingState.STOPPED_BY_COMPLETION, PollingState.STOPPED_BY_BUDGET)

    async def run(self) -> str:
        if self.state != PollingState.IDLE:
            raise RuntimeError(f"Polling already ran (state={self.state})")
        self.state = PollingState.POLLING

        while self.attempts < self._max_attempts:
            await asyncio.sleep(self._interval_seconds)
            self.attempts += 1
            try:
                messages = await self._fetch_messages()
            except asyncio.CancelledError:
                raise
            except Exception as ex:
                logger.warning(f"Poll {self.attempts}/{self._max_attempts} failed: {ex}")
                continue

            self._on_refresh(messages)
            if self._looks_complete(messages):
                logger.info(f"Polling saw an assistant reply after {self.attempts} poll(s)")
                self.state = PollingState.STOPPED_BY_COMPLETION
                return self.state

        logger.warning(f"Polling budget of {self._max_attempts} attempts exhausted")
        self.state = PollingState.STOPPED_BY_BUDGET
        return self.state

    def _looks_complete(self, messages: list[dict[str, Any]]) -> bool:
        if self.attempts < self._min_attempts_before_complete or not messages:
            return False
        return messages[-1].get("role") == "assistant"
