from __future__ import annotations

from typing import Protocol, runtime_checkable

from desk_stream.models import ConversationItem


@runtime_checkable
class ConversationView(Protocol):
    def on_items_changed(self, items: list[ConversationItem]) -> None: ...
    def on_responding_changed(self, responding: bool) -> None: ...
    def on_error(self, message: str) -> None: ...


class ActiveConversation:
    """Holds the id of the conversation the user is looking at."""

    def __init__(self, conversation_id: str | None = None):
        self._conversation_id = conversation_id

    def get(self) -> str | None:
        return self._conversation_id

    def set(self, conversation_id: str | None) -> None:
        self._conversation_id = conversation_id
