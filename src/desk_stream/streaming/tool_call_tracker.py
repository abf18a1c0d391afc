from __future__ import annotations

import json
from dataclasses import replace
from typing import Any

from loguru import logger

from desk_stream.models import StreamEvent, ToolCallItem, ToolCallStatus
from desk_stream.streaming.state import StreamState

DEFAULT_TOOL_TYPE = "function_call"

_TOOL_TYPES_BY_NAME: dict[str, str] = {
    "file_search": "file_search_call",
    "web_search": "web_search_call",
    "code_interpreter": "code_interpreter_call",
}


def resolve_tool_type(name: str | None, explicit: str | None = None) -> str:
    if explicit:
        return explicit
    return _TOOL_TYPES_BY_NAME.get(name or "", DEFAULT_TOOL_TYPE)


def _serialize(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=True)


def _tool_call_id(event: StreamEvent) -> str:
    return str(event.payload.get("id") or event.id)


def _explicit_type(payload: dict[str, Any]) -> str | None:
    value = payload.get("toolType") or payload.get("tool_type")
    return str(value) if value else None


def on_start(state: StreamState, event: StreamEvent) -> StreamState:
    payload = event.payload
    call_id = _tool_call_id(event)
    name = payload.get("name")
    arguments = _serialize(payload.get("arguments"))
    explicit_type = _explicit_type(payload)

    index = state.find_index(call_id)
    if index is None:
        item = ToolCallItem(
            id=call_id,
            tool_type=resolve_tool_type(name, explicit_type),
            status=ToolCallStatus.IN_PROGRESS,
            name=name,
            arguments_serialized=arguments,
        )
        return replace(state, items=state.items + (item,))

    existing = state.items[index]
    if not isinstance(existing, ToolCallItem):
        logger.warning(f"Tool call {call_id} collides with a message item; start ignored")
        return state

    if explicit_type:
        tool_type = explicit_type
    elif existing.name is None and name:
        tool_type = resolve_tool_type(name)
    else:
        tool_type = existing.tool_type

    merged = replace(
        existing,
        # Never move a completed call backwards.
        status=existing.status if existing.status == ToolCallStatus.COMPLETED else ToolCallStatus.IN_PROGRESS,
        name=name or existing.name,
        arguments_serialized=arguments if arguments is not None else existing.arguments_serialized,
        tool_type=tool_type,
    )
    return _replace_item(state, index, merged)


def on_complete(state: StreamState, event: StreamEvent) -> StreamState:
    call_id = _tool_call_id(event)
    index = state.find_index(call_id)
    existing = state.items[index] if index is not None else None
    if not isinstance(existing, ToolCallItem):
        logger.warning(f"Dropping completion for tool call {call_id}: no matching start")
        return state

    payload = event.payload
    output = payload.get("result", payload.get("output"))
    completed = replace(
        existing,
        status=ToolCallStatus.COMPLETED,
        output_serialized=_serialize(output) if output is not None else existing.output_serialized,
    )
    return _replace_item(state, index, completed)


def _replace_item(state: StreamState, index: int, item: ToolCallItem) -> StreamState:
    items = list(state.items)
    items[index] = item
    return replace(state, items=tuple(items))
