from __future__ import annotations

import asyncio
import json
import time
from typing import Any
from urllib.parse import parse_qsl

from agent_relay.command import execute_command, parse_command_from_message
from agent_relay.commands.router import CommandRouter
from agent_relay.errors import AgentRelayError
from agent_relay.resources import get_available_resources
from agent_relay.session_context import SessionContext


def parse_answers(argument: str) -> dict[str, str]:
    """Parse ``question=answer; other=answer`` into an answers mapping."""
    answers: dict[str, str] = {}
    for part in argument.split(";"):
        key, sep, value = part.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected question=answer, got {part.strip()!r}")
        answers[key.strip()] = value.strip()
    return answers


class ConsoleSubscriber:
    """Prints broadcast events to stdout."""

    def __init__(self, subscriber_id: str = "console", *, line_prefix: str = "assistant> "):
        self._id = subscriber_id
        self._line_prefix = line_prefix
        self._closed = False

    @property
    def id(self) -> str:
        return self._id

    @property
    def last_activity_time(self) -> float:
        # A local terminal never goes stale.
        return time.monotonic()

    def send(self, event: str, data: Any) -> None:
        if self._closed:
            return
        for line in self.render(event, data):
            print(line)

    def render(self, event: str, data: Any) -> list[str]:
        if event == "init":
            return [f"{self._line_prefix}[{len(data['messages'])} messages, status={data['status']}]"]
        if event == "status_change":
            return [f"{self._line_prefix}[status: {data['status']}]"]
        if event == "message_update":
            role = data["role"]
            if role == "user":
                return []
            if role == "agent":
                tool = json.loads(data["content"])
                return [f"{self._line_prefix}[tool] {tool.get('name')} ({data.get('toolUseId')})"]
            if role == "tool_result":
                status = data.get("status", "success")
                return [f"{self._line_prefix}[tool {status}] {data.get('parentToolUseId')}"]
            return [f"{self._line_prefix}{data['content']}"]
        return [f"{self._line_prefix}[{event}] {json.dumps(data, ensure_ascii=False)}"]

    def close(self) -> None:
        self._closed = True

    def is_closed(self) -> bool:
        return self._closed


class ConsoleController:
    def __init__(
        self,
        session: SessionContext,
        *,
        tool_names: list[str],
        line_prefix: str = "assistant> ",
        commands: dict[str, dict] | None = None,
        plugins: dict[str, dict] | None = None,
        plugin_paths: list[str] | None = None,
        working_directory: str | None = None,
        command_timeout_seconds: float | None = None,
    ):
        self._session = session
        self._tool_names = tool_names
        self._line_prefix = line_prefix
        self._commands = commands or {}
        self._plugins = plugins or {}
        self._plugin_paths = plugin_paths or []
        self._working_directory = working_directory
        self._command_timeout_seconds = command_timeout_seconds
        self._router = CommandRouter(
            on_help=self._on_help,
            on_status=self._on_status,
            on_messages=self._on_messages,
            on_tools=self._on_tools,
            on_pending=self._on_pending,
            on_answer=self._on_answer,
            on_plan_decision=self._on_plan_decision,
            on_stop=self._on_stop,
            on_resources=self._on_resources,
            on_unknown=self._on_unknown,
        )

    async def handle(self, user_input: str) -> None:
        try:
            if await self._router.try_handle(user_input):
                return
            await self._session.run_state.send_message(user_input)
        except AgentRelayError as ex:
            print(f"{self._line_prefix}[{ex.kind}] {ex}")

    def _print(self, text: str) -> None:
        print(f"{self._line_prefix}{text}")

    async def _on_help(self) -> None:
        self._print("Available commands:")
        self._print("- /status")
        self._print("- /messages [limit=N&direction=head|tail | around=ID&context=N | after=ID | before=ID]")
        self._print("- /tools")
        self._print("- /pending")
        self._print("- /answer question=answer; question=answer")
        self._print("- /approve | /reject")
        self._print("- /stop")
        self._print("- /resources")
        for name, config in self._commands.items():
            description = config.get("description")
            self._print(f"- /{name} ({description})" if description else f"- /{name}")

    async def _on_status(self) -> None:
        broadcaster = self._session.broadcaster
        self._print(
            f"status={self._session.run_state.get_status()} "
            f"messages={len(self._session.ledger)} subscribers={broadcaster.get_subscriber_count()}"
        )

    async def _on_messages(self, argument: str) -> None:
        page = self._session.query_messages(dict(parse_qsl(argument)))
        self._print(f"{len(page.messages)} of {page.total} messages (hasMore={str(page.has_more).lower()})")
        for message in page.messages:
            preview = message.content.replace("\n", " ")
            if len(preview) > 80:
                preview = preview[:77] + "..."
            self._print(f"  #{message.id} {message.role}/{message.type}: {preview}")

    async def _on_tools(self) -> None:
        active = self._session.get_active_tool_executions()
        self._print(f"Tools: {', '.join(self._tool_names) or 'none'}")
        if not active:
            self._print("No tool executions in flight.")
            return
        for message in active:
            self._print(f"  running: {message.tool_use_id} (message #{message.id})")

    async def _on_pending(self) -> None:
        actions = self._session.run_state.get_pending_actions()
        if not actions:
            self._print("Nothing is waiting for you.")
            return
        for action in actions:
            self._print(f"{action['type']} ({action['toolUseId']}):")
            for line in action["content"].splitlines():
                self._print(f"  {line}")

    async def _on_answer(self, argument: str) -> None:
        try:
            answers = parse_answers(argument)
        except ValueError as ex:
            self._print(f"Usage: /answer question=answer; question=answer ({ex})")
            return
        await self._session.run_state.send_action(answers)

    async def _on_plan_decision(self, approved: bool) -> None:
        await self._session.run_state.approve_plan(approved)

    async def _on_stop(self) -> None:
        await self._session.run_state.stop_agent()

    async def _on_resources(self) -> None:
        resources = get_available_resources(
            plugins=self._plugins,
            plugin_paths=self._plugin_paths,
            commands=self._commands,
            working_directory=self._working_directory,
        )
        if not resources:
            self._print("No skills, commands or slash commands found.")
            return
        for resource in resources:
            line = f"  [{resource.type}] {resource.name}"
            if resource.description:
                line += f" - {resource.description}"
            self._print(line)

    async def _on_unknown(self, trimmed: str) -> None:
        name = parse_command_from_message(trimmed)
        config = self._commands.get(name) if name else None
        if config is None:
            self._print(f"Unknown local command: {trimmed}")
            return

        try:
            result = await execute_command(name, config, timeout_seconds=self._command_timeout_seconds)
        except asyncio.TimeoutError:
            self._print(f"/{name} timed out")
            return
        except OSError as ex:
            self._print(f"/{name} failed to start: {ex}")
            return

        for line in result.stdout.rstrip().splitlines():
            self._print(line)
        for line in result.stderr.rstrip().splitlines():
            self._print(f"[stderr] {line}")
        self._print(f"[/{name} exited with code {result.exit_code}]")
