from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_status: Callable[[], Awaitable[None]],
        on_messages: Callable[[str], Awaitable[None]],
        on_tools: Callable[[], Awaitable[None]],
        on_pending: Callable[[], Awaitable[None]],
        on_answer: Callable[[str], Awaitable[None]],
        on_plan_decision: Callable[[bool], Awaitable[None]],
        on_stop: Callable[[], Awaitable[None]],
        on_resources: Callable[[], Awaitable[None]],
        on_unknown: Callable[[str], Awaitable[None]],
    ) -> None:
        self._on_help = on_help
        self._on_status = on_status
        self._on_messages = on_messages
        self._on_tools = on_tools
        self._on_pending = on_pending
        self._on_answer = on_answer
        self._on_plan_decision = on_plan_decision
        self._on_stop = on_stop
        self._on_resources = on_resources
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command, _, argument = trimmed.partition(" ")
        argument = argument.strip()

        if command == "/help":
            await self._on_help()
        elif command == "/status":
            await self._on_status()
        elif command == "/messages":
            await self._on_messages(argument)
        elif command == "/tools":
            await self._on_tools()
        elif command == "/pending":
            await self._on_pending()
        elif command == "/answer":
            await self._on_answer(argument)
        elif command == "/approve":
            await self._on_plan_decision(True)
        elif command == "/reject":
            await self._on_plan_decision(False)
        elif command == "/stop":
            await self._on_stop()
        elif command == "/resources":
            await self._on_resources()
        else:
            await self._on_unknown(trimmed)
        return True
