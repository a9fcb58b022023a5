from pathlib import Path
from typing import Any

DEFAULT_MAX_BYTES = 1_000_000


class ReadFileTool:
    def __init__(self, working_directory: str | None = None, max_bytes: int = DEFAULT_MAX_BYTES):
        self._working_directory = Path(working_directory) if working_directory else None
        self._max_bytes = max_bytes

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Read a UTF-8 text file. Relative paths are resolved against the working directory."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Absolute path, or a path relative to the working directory",
                },
            },
            "required": ["path"],
        }

    def resolve(self, raw_path: str) -> Path:
        path = Path(raw_path).expanduser()
        if not path.is_absolute() and self._working_directory is not None:
            path = self._working_directory / path
        return path

    async def execute(self, tool_input: dict[str, Any]) -> str:
        path = self.resolve(tool_input["path"])
        if not path.is_file():
            raise FileNotFoundError(f"No such file: {path}")

        with open(path, "rb") as f:
            data = f.read(self._max_bytes + 1)
        text = data[: self._max_bytes].decode("utf-8", errors="replace")
        if len(data) > self._max_bytes:
            text += f"\n\n[file truncated at {self._max_bytes:,} bytes]"
        return text
