import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

_PACKAGE = "agent_relay"


@runtime_checkable
class LogSink(Protocol):
    def attach(self, level: str) -> int: ...
    def describe(self, level: str) -> str: ...


class StderrLogSink:
    """Human-readable lines on stderr. Off by default since the console REPL owns the terminal."""

    def __init__(self, only_package: bool = True):
        self._only_package = only_package

    def attach(self, level: str) -> int:
        return logger.add(
            sys.stderr,
            level=level,
            filter=_PACKAGE if self._only_package else None,
            format="<level>{level:<8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        )

    def describe(self, level: str) -> str:
        return f"stderr ({level})"


class RotatingFileLogSink:
    def __init__(
        self,
        path: str = "agent-relay.log",
        rotation: str = "10 MB",
        retention: int = 3,
    ):
        self._path = path
        self._rotation = rotation
        self._retention = retention

    def attach(self, level: str) -> int:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        return logger.add(
            self._path,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}",
            rotation=self._rotation,
            retention=self._retention,
            enqueue=True,
        )

    def describe(self, level: str) -> str:
        return f"file ({self._path}, {level})"


class JsonLinesLogSink:
    """One serialized loguru record per line, for log shippers."""

    def __init__(self, path: str = "agent-relay.log.jsonl"):
        self._path = path

    def attach(self, level: str) -> int:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        return logger.add(self._path, level=level, serialize=True, enqueue=True)

    def describe(self, level: str) -> str:
        return f"jsonl ({self._path}, {level})"


SINK_TYPES: dict[str, type] = {
    "stderr": StderrLogSink,
    "console": StderrLogSink,
    "file": RotatingFileLogSink,
    "jsonl": JsonLinesLogSink,
}

DEFAULT_SINKS: list[dict[str, Any]] = [{"type": "file"}]


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace loguru's default handler with the configured sinks.

    Each entry is ``{"type": ..., "level": ..., **sink_options}``. Returns a
    short description per attached sink for the startup banner.
    """
    logger.remove()

    attached: list[str] = []
    for entry in consumers if consumers is not None else DEFAULT_SINKS:
        sink_type = str(entry.get("type", "")).lower()
        sink_cls = SINK_TYPES.get(sink_type)
        if sink_cls is None:
            logger.warning(f"Ignoring unknown log sink type: {sink_type!r}")
            continue

        sink_level = str(entry.get("level", level)).upper()
        options = {k: v for k, v in entry.items() if k not in ("type", "level")}
        sink = sink_cls(**options)
        sink.attach(sink_level)
        attached.append(sink.describe(sink_level))

    return attached
