from desk_stream.streaming.dedup import EventDeduplicator
from desk_stream.streaming.reducer import apply_event, error_message
from desk_stream.streaming.state import StreamState
from desk_stream.streaming.tool_call_tracker import resolve_tool_type

__all__ = [
    "EventDeduplicator",
    "StreamState",
    "apply_event",
    "error_message",
    "resolve_tool_type",
]
