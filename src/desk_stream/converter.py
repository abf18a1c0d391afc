from __future__ import annotations

import json
from typing import Any

from desk_stream.models import ConversationItem, MessageItem, ToolCallItem, ToolCallStatus
from desk_stream.streaming.tool_call_tracker import resolve_tool_type


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=True)


def tool_call_to_item(tool_call: dict[str, Any]) -> ToolCallItem:
    name = tool_call.get("name")
    return ToolCallItem(
        id=str(tool_call.get("id", "")),
        tool_type=resolve_tool_type(name, tool_call.get("type")),
        status=str(tool_call.get("status") or ToolCallStatus.COMPLETED),
        name=name,
        arguments_serialized=_as_text(tool_call.get("arguments")),
        output_serialized=_as_text(tool_call.get("output")),
    )


def message_to_items(message: dict[str, Any]) -> list[ConversationItem]:
    """Convert one stored message to visible items.

    Tool calls recorded on an assistant message come first: the agent ran
    them before writing the text.
    """
    items: list[ConversationItem] = []
    role = str(message.get("role", "assistant"))
    if role == "assistant":
        for tool_call in message.get("toolCalls") or []:
            items.append(tool_call_to_item(tool_call))
    items.append(
        MessageItem(
            id=str(message.get("id", "")),
            role=role,
            text=str(message.get("content") or ""),
        )
    )
    return items


def messages_to_items(messages: list[dict[str, Any]]) -> list[ConversationItem]:
    items: list[ConversationItem] = []
    for message in messages:
        items.extend(message_to_items(message))
    return items
