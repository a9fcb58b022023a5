import asyncio
import platform
import subprocess
from typing import Any

from loguru import logger

_IS_WINDOWS = platform.system() == "Windows"
DEFAULT_TIMEOUT_SECONDS = 30.0


class BashTool:
    """Runs a shell command in the session's working directory."""

    def __init__(self, working_directory: str | None = None, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        self._cwd = working_directory
        self._timeout_seconds = timeout_seconds

    @property
    def name(self) -> str:
        return "bash"

    @property
    def description(self) -> str:
        return (
            "Run a shell command in the working directory and return stdout followed by stderr. "
            f"Commands are killed after {self._timeout_seconds:g}s."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The shell command to run",
                },
            },
            "required": ["command"],
        }

    async def _spawn(self, command: str) -> asyncio.subprocess.Process:
        kwargs: dict[str, Any] = {
            "stdin": subprocess.DEVNULL,
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
            "cwd": self._cwd,
        }
        if _IS_WINDOWS:
            return await asyncio.create_subprocess_shell(
                f"cmd.exe /c {command}",
                creationflags=subprocess.CREATE_NEW_PROCESS_GROUP,
                **kwargs,
            )
        return await asyncio.create_subprocess_shell(command, **kwargs)

    async def execute(self, tool_input: dict[str, Any]) -> str:
        command = tool_input["command"]
        logger.debug(f"bash: {command}")

        proc = await self._spawn(command)
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout_seconds)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"bash command timed out after {self._timeout_seconds:g}s: {command}")
            return f"[timed out after {self._timeout_seconds:g}s]"
        except asyncio.CancelledError:
            # Interrupted run: do not leave the child behind.
            proc.kill()
            raise

        output = stdout.decode(errors="replace") + stderr.decode(errors="replace")
        if proc.returncode != 0:
            return f"{output}\n[exit code {proc.returncode}]"
        return output.rstrip()
