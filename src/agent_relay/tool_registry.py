from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from loguru import logger

from agent_relay.collaborator.protocol import CollaboratorTool
from agent_relay.tools.bash_tool import BashTool
from agent_relay.tools.read_file_tool import ReadFileTool

DEFAULT_TOOLS = ("bash", "read_file")


@dataclass(frozen=True)
class ToolEntry:
    name: str
    build: Callable[[dict], CollaboratorTool]


_ENTRIES = [
    ToolEntry("bash", lambda ctx: BashTool(ctx["working_directory"], ctx["bash_timeout_seconds"])),
    ToolEntry("read_file", lambda ctx: ReadFileTool(ctx["working_directory"])),
]


def available_tool_names() -> list[str]:
    return [entry.name for entry in _ENTRIES]


def get_all(
    working_directory: str | None = None,
    enabled: list[str] | tuple[str, ...] | None = DEFAULT_TOOLS,
    bash_timeout_seconds: float = 30.0,
) -> list[CollaboratorTool]:
    """Build the tools the collaborator runs itself. ``enabled=None`` means every known tool."""
    ctx = {
        "working_directory": working_directory,
        "bash_timeout_seconds": bash_timeout_seconds,
    }
    wanted = set(available_tool_names() if enabled is None else enabled)

    unknown = wanted.difference(available_tool_names())
    if unknown:
        logger.warning(f"Ignoring unknown tools in configuration: {', '.join(sorted(unknown))}")

    return [entry.build(ctx) for entry in _ENTRIES if entry.name in wanted]
