from __future__ import annotations

from desk_stream.models import StreamEvent


class EventDeduplicator:
    """Remembers which event ids a session has applied.

    The set only grows for the lifetime of the owning session and is
    discarded with it.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def accept(self, event: StreamEvent) -> bool:
        if event.id in self._seen:
            return False
        self._seen.add(event.id)
        return True

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)
