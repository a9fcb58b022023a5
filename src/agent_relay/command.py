from __future__ import annotations

import asyncio
import os
import re
import shlex
from dataclasses import dataclass

from loguru import logger

_COMMAND_NAME = re.compile(r"^/([A-Za-z0-9_-]+)")


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int


def parse_command_from_message(content: str) -> str | None:
    """Return ``deploy`` for ``/deploy now``; None when the text is not a command invocation."""
    match = _COMMAND_NAME.match(content.strip())
    return match.group(1) if match else None


async def execute_command(name: str, config: dict, *, timeout_seconds: float | None = None) -> CommandResult:
    """Run a configured command (``{"command", "args", "env"}``) through the shell."""
    command = config["command"]
    args = [shlex.quote(str(a)) for a in config.get("args") or []]
    env = {**os.environ, **{k: str(v) for k, v in (config.get("env") or {}).items()}}

    logger.info(f"Executing command: {name}")
    proc = await asyncio.create_subprocess_shell(
        " ".join([command, *args]),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_seconds)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        proc.kill()
        await proc.wait()
        raise

    exit_code = proc.returncode or 0
    logger.info(f"Command {name} exited with code {exit_code}")
    return CommandResult(
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        exit_code=exit_code,
    )
