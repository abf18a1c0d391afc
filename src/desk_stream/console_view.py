from __future__ import annotations

from desk_stream.models import ConversationItem, MessageItem, ToolCallItem


class ConsoleView:
    """Renders conversation items to stdout as they stream in.

    Streamed assistant text is printed as it grows; a reconciled copy of a
    message that was already streamed is not printed again.
    """

    def __init__(self, *, line_prefix: str = "assistant> "):
        self._line_prefix = line_prefix
        self._streamed: dict[str, str] = {}
        self._tool_status: dict[str, str] = {}

    def reset(self) -> None:
        self._streamed.clear()
        self._tool_status.clear()

    def on_items_changed(self, items: list[ConversationItem]) -> None:
        for item in items:
            if isinstance(item, ToolCallItem):
                self._render_tool_call(item)
            elif item.role == "assistant":
                self._render_assistant(item)

    def on_responding_changed(self, responding: bool) -> None:
        if not responding:
            print()

    def on_error(self, message: str) -> None:
        print(f"\n{self._line_prefix}[error] {message}")

    def _render_tool_call(self, item: ToolCallItem) -> None:
        if self._tool_status.get(item.id) == item.status:
            return
        self._tool_status[item.id] = item.status
        label = item.name or item.tool_type
        print(f"\n{self._line_prefix}[{label}] {item.status}", flush=True)

    def _render_assistant(self, item: MessageItem) -> None:
        previous = self._streamed.get(item.id)
        if previous is None:
            if item.text and item.text in self._streamed.values():
                self._streamed[item.id] = item.text
                return
            print(f"\n{self._line_prefix}{item.text}", end="", flush=True)
        elif item.text.startswith(previous):
            print(item.text[len(previous):], end="", flush=True)
        elif item.text != previous:
            print(f"\n{self._line_prefix}{item.text}", end="", flush=True)
        self._streamed[item.id] = item.text
