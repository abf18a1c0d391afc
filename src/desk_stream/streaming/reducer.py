from __future__ import annotations

from dataclasses import replace

from desk_stream.models import EventType, StreamEvent
from desk_stream.streaming import message_builder, tool_call_tracker
from desk_stream.streaming.state import StreamState


def apply_event(state: StreamState, event: StreamEvent) -> StreamState:
    """Fold one stream event into ``state`` and return the new state.

    Pure: no I/O and no mutation of ``state``. Unknown event types leave
    the state unchanged.
    """
    if event.type == EventType.MESSAGE_DELTA:
        return message_builder.on_delta(state, event)
    if event.type == EventType.TOOL_CALL_START:
        return tool_call_tracker.on_start(state, event)
    if event.type == EventType.TOOL_CALL_COMPLETE:
        return tool_call_tracker.on_complete(state, event)
    if event.type == EventType.ASSISTANT_MESSAGE_SAVED:
        return message_builder.on_message_saved(state, event)
    if event.type == EventType.ERROR:
        return replace(state, error=error_message(event))
    return state


def error_message(event: StreamEvent) -> str:
    payload = event.payload
    message = payload.get("error") or payload.get("message") or payload.get("value")
    return str(message) if message else "The assistant reported an error"
