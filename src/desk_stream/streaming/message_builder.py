from __future__ import annotations

from dataclasses import replace

from desk_stream.models import MessageItem, StreamEvent
from desk_stream.streaming.state import StreamState


def on_delta(state: StreamState, event: StreamEvent) -> StreamState:
    payload = event.payload
    snapshot = payload.get("text")
    delta = payload.get("delta")
    if snapshot is None and delta is None:
        return state

    snapshot_sequence = state.snapshot_sequence
    if snapshot is not None:
        # An older cumulative snapshot must not overwrite a newer one.
        if snapshot_sequence is not None and event.sequence < snapshot_sequence:
            return state
        new_text = str(snapshot)
        snapshot_sequence = event.sequence
    else:
        new_text = state.cumulative_text + str(delta)

    items = state.items
    message_id = state.streaming_message_id
    if message_id is None:
        message_id = state.next_message_id()
        items = items + (MessageItem(id=message_id, role="assistant", text=""),)

    updated = tuple(
        MessageItem(id=item.id, role=item.role, text=new_text) if item.id == message_id else item
        for item in items
    )
    return replace(
        state,
        items=updated,
        streaming_message_id=message_id,
        cumulative_text=new_text,
        snapshot_sequence=snapshot_sequence,
    )


def on_message_saved(state: StreamState, event: StreamEvent) -> StreamState:
    """Freeze the current streaming message; the next delta opens a new one."""
    if state.streaming_message_id is None:
        return replace(state, saved_messages=state.saved_messages + 1)
    return replace(
        state,
        segment=state.segment + 1,
        streaming_message_id=None,
        cumulative_text="",
        saved_messages=state.saved_messages + 1,
    )
