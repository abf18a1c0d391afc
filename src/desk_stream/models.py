from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


class JobStatus:
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

_STATUS_ALIASES = {
    "pending": JobStatus.QUEUED,
    "processing": JobStatus.RUNNING,
}


def normalize_job_status(value: object) -> str:
    status = str(value or "").strip().lower()
    return _STATUS_ALIASES.get(status, status)


def is_terminal(status: str) -> bool:
    return normalize_job_status(status) in TERMINAL_STATUSES


class EventType:
    MESSAGE_DELTA = "message_delta"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_COMPLETE = "tool_call_complete"
    ASSISTANT_MESSAGE_SAVED = "assistant_message_saved"
    ERROR = "error"


class ToolCallStatus:
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Job:
    id: str
    conversation_id: str
    status: str


@dataclass(frozen=True)
class StreamEvent:
    id: str
    sequence: float
    type: str
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any], *, job_id: str = "") -> StreamEvent:
        """Build an event from its wire form.

        Accepts ``payload`` or ``data`` for the body and ``sequence`` or
        ``timestamp`` for ordering. Events without an id are keyed by
        ``<job_id>:<sequence>``.
        """
        sequence_value = raw.get("sequence", raw.get("timestamp", 0))
        try:
            sequence = float(sequence_value)
        except (TypeError, ValueError):
            sequence = 0.0
        payload = raw.get("payload", raw.get("data"))
        if not isinstance(payload, dict):
            payload = {} if payload is None else {"value": payload}
        event_id = str(raw.get("id") or "").strip() or f"{job_id}:{sequence:g}"
        return cls(
            id=event_id,
            sequence=sequence,
            type=str(raw.get("type", "")),
            payload=payload,
        )


@dataclass(frozen=True)
class MessageItem:
    id: str
    role: str
    text: str


@dataclass(frozen=True)
class ToolCallItem:
    id: str
    tool_type: str
    status: str
    name: str | None = None
    arguments_serialized: str | None = None
    output_serialized: str | None = None


ConversationItem = Union[MessageItem, ToolCallItem]
