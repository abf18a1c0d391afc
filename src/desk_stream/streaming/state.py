from __future__ import annotations

from dataclasses import dataclass

from desk_stream.models import ConversationItem


@dataclass(frozen=True)
class StreamState:
    """Locally built view of one conversation while a job streams.

    ``streaming_message_id`` is the single mutation target for deltas;
    ``cumulative_text`` is tracked here rather than read back from ``items``
    so a reconciled item list can never be appended to twice.
    """

    items: tuple[ConversationItem, ...] = ()
    message_prefix: str = "streaming"
    segment: int = 0
    streaming_message_id: str | None = None
    cumulative_text: str = ""
    snapshot_sequence: float | None = None
    saved_messages: int = 0
    error: str | None = None

    def next_message_id(self) -> str:
        return f"{self.message_prefix}-{self.segment}"

    def find_index(self, item_id: str) -> int | None:
        for index, item in enumerate(self.items):
            if item.id == item_id:
                return index
        return None
