import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

# Records logged outside a session show "-" for these.
SESSION_DEFAULTS = {"conversation_id": "-", "job_id": "-"}

_SESSION_FIELDS = "[{extra[conversation_id]}/{extra[job_id]}]"


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


class ConsoleLogConsumer:
    def __init__(self, show_session: bool = True):
        self._show_session = show_session

    def register(self, level: str) -> None:
        fields = f" <magenta>{_SESSION_FIELDS}</magenta>" if self._show_session else ""
        logger.add(
            sys.stderr,
            level=level,
            format=f"<level>{{level:<8}}</level>{fields} <cyan>{{name}}</cyan>:<cyan>{{line}}</cyan> - <level>{{message}}</level>",
        )

    def describe(self, level: str) -> str:
        return f"console (stderr, {level})"


class FileLogConsumer:
    """Rotating text log; one line per record, tagged with the session it came from."""

    serialize = False

    def __init__(self, path: str = "desk_stream.log", rotation: str = "10 MB", retention: int = 3):
        self._path = Path(path)
        self._rotation = rotation
        self._retention = retention

    def register(self, level: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self._path),
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | " + _SESSION_FIELDS + " {name}:{function}:{line} - {message}",
            rotation=self._rotation,
            retention=self._retention,
            serialize=self.serialize,
        )

    def describe(self, level: str) -> str:
        return f"{'jsonl' if self.serialize else 'file'} ({self._path}, {level})"


class JsonLinesLogConsumer(FileLogConsumer):
    """Same file sink, written as loguru's serialized JSON records."""

    serialize = True

    def __init__(self, path: str = "desk_stream.jsonl", rotation: str = "10 MB", retention: int = 3):
        super().__init__(path, rotation, retention)


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
    "jsonl": JsonLinesLogConsumer,
}

_DEFAULT_CONSUMERS = [
    {"type": "console"},
    {"type": "file"},
]


def _build_consumer(config: dict[str, Any]) -> LogConsumer | None:
    sink_type = config.get("type", "")
    cls = _CONSUMER_TYPES.get(sink_type)
    if cls is None:
        logger.warning(f"Unknown log consumer type: {sink_type!r}")
        return None
    return cls(**{k: v for k, v in config.items() if k not in ("type", "level")})


def setup_logging(level: str = "INFO", consumers: list[dict[str, Any]] | None = None) -> list[str]:
    """Swap loguru's default sink for the configured consumers and describe each one."""
    logger.remove()
    logger.configure(extra=dict(SESSION_DEFAULTS))

    descriptions: list[str] = []
    for config in _DEFAULT_CONSUMERS if consumers is None else consumers:
        consumer = _build_consumer(config)
        if consumer is None:
            continue
        sink_level = config.get("level", level)
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))
    return descriptions


def session_logger(conversation_id: str, job_id: str):
    return logger.bind(conversation_id=conversation_id, job_id=job_id)
