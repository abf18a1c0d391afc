from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from desk_stream.backend import JobBackend
from desk_stream.models import is_terminal, normalize_job_status


class CompletionWatcher:
    """Follows a job's status record, independent of its event log."""

    def __init__(
        self,
        backend: JobBackend,
        job_id: str,
        *,
        on_terminal: Callable[[str], None],
        on_status: Callable[[str], None] | None = None,
    ):
        self._backend = backend
        self._job_id = job_id
        self._on_terminal = on_terminal
        self._on_status = on_status
        self.last_status: str | None = None

    async def run(self) -> str | None:
        """Watch until a terminal status arrives; return it, or ``None`` if the watch ended early."""
        statuses = self._backend.watch_job_status(self._job_id)
        try:
            async for raw_status in statuses:
                status = normalize_job_status(raw_status)
                if status == self.last_status:
                    continue
                self.last_status = status
                logger.debug(f"Job {self._job_id} status: {status}")
                if self._on_status is not None:
                    self._on_status(status)
                if is_terminal(status):
                    self._on_terminal(status)
                    return status
            return None
        finally:
            aclose = getattr(statuses, "aclose", None)
            if aclose is not None:
                await aclose()
