from __future__ import annotations

from desk_stream.coordinator import Session
from desk_stream.models import ToolCallItem


class SessionController:
    def __init__(self, *, line_prefix: str, short_id_len: int = 8):
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len

    def short_id(self, value: str) -> str:
        if len(value) <= self._short_id_len:
            return value
        return value[: self._short_id_len]

    def format_session_entry(self, session: Session, *, current: bool) -> str:
        marker = "*" if current else " "
        state = session.state
        tool_calls = sum(1 for item in state.items if isinstance(item, ToolCallItem))
        return (
            f"{self._line_prefix}{marker} chat={session.conversation_id} "
            f"job=[{self.short_id(session.job_id)}] (id={session.job_id}) "
            f"(mode={session.mode}, events={len(session.dedup)}, "
            f"saved={state.saved_messages}, tool_calls={tool_calls})"
        )

    def format_session_list(self, sessions: list[Session], *, current_ids: set[str]) -> list[str]:
        if not sessions:
            return [f"{self._line_prefix}No running sessions"]
        lines = [f"{self._line_prefix}Sessions:"]
        for session in sessions:
            lines.append(self.format_session_entry(session, current=session.id in current_ids))
        return lines
