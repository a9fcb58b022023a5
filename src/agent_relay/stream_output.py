from __future__ import annotations

import json
from pathlib import Path

from loguru import logger


class StreamJsonRecorder:
    """Appends every raw collaborator event to a JSONL file, one event per line."""

    def __init__(self, path: str):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self._path, "a", encoding="utf-8")
        logger.info(f"Recording collaborator events to {self._path}")

    @property
    def path(self) -> Path:
        return self._path

    def record(self, raw: object) -> None:
        if self._file.closed:
            return
        try:
            self._file.write(json.dumps(raw, ensure_ascii=False, default=str) + "\n")
            self._file.flush()
        except OSError as ex:
            logger.warning(f"Failed to record collaborator event to {self._path}: {ex}")

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()
