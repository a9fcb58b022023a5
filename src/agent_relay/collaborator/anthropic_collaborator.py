from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable
from typing import Any, TypeVar

import anthropic
from loguru import logger
from tenacity import retry

from agent_relay.collaborator.retry import default_retry_kwargs
from agent_relay.collaborator.protocol import CollaboratorTool

T = TypeVar("T")

QUESTION_TOOL = {
    "name": "AskUserQuestion",
    "description": (
        "Ask the user one or more multiple-choice questions and wait for their answers "
        "before continuing."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "questions": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "question": {"type": "string"},
                        "options": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "label": {"type": "string"},
                                    "description": {"type": "string"},
                                },
                                "required": ["label"],
                            },
                        },
                    },
                    "required": ["question"],
                },
            }
        },
        "required": ["questions"],
    },
}

PLAN_TOOL = {
    "name": "ExitPlanMode",
    "description": "Present a plan to the user and wait for approval before carrying it out.",
    "input_schema": {
        "type": "object",
        "properties": {"plan": {"type": "string"}},
        "required": ["plan"],
    },
}

INTERACTIVE_TOOLS = (QUESTION_TOOL, PLAN_TOOL)


class _Interrupted(Exception):
    pass


class AnthropicCollaborator:
    """Runs a tool-using conversation on the Anthropic Messages API.

    Each ``stream()`` call is one run: it takes the next queued user input,
    loops completion -> tool execution until the model stops asking for
    tools, and yields Agent-SDK shaped events along the way. Interactive
    tools pause the loop until their tool_result arrives through ``send()``.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        max_tokens: int = 8192,
        temperature: float = 1.0,
        system_prompt: str = "",
        tools: list[CollaboratorTool] | None = None,
        max_tool_result_chars: int = 40_000,
        client: Any = None,
    ):
        self._client = client if client is not None else anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._system_prompt = system_prompt
        self._tool_map: dict[str, CollaboratorTool] = {t.name: t for t in tools or []}
        self._converted_tools = self.convert_tools(list(self._tool_map.values())) + [
            dict(t) for t in INTERACTIVE_TOOLS
        ]
        self._interactive_names = {t["name"] for t in INTERACTIVE_TOOLS}
        self._max_tool_result_chars = max_tool_result_chars
        self._messages: list[dict] = []
        self._inbox: asyncio.Queue[str | dict] = asyncio.Queue()
        self._interrupted = asyncio.Event()

    @property
    def tool_names(self) -> list[str]:
        return [t["name"] for t in self._converted_tools]

    @property
    def history(self) -> list[dict]:
        return list(self._messages)

    def convert_tools(self, tools: list[CollaboratorTool]) -> list[dict]:
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": t.input_schema,
            }
            for t in tools
        ]

    async def send(self, payload: str | dict) -> None:
        if isinstance(payload, str):
            # A new user turn starts a new run.
            self._interrupted.clear()
        self._inbox.put_nowait(payload)

    async def interrupt(self) -> None:
        self._interrupted.set()
        while not self._inbox.empty():
            self._inbox.get_nowait()
        logger.info("Agent run interrupted")

    async def stream(self) -> AsyncIterator[dict]:
        try:
            first_input = await self._until_interrupted(self._inbox.get())
            if isinstance(first_input, dict):
                logger.warning("Discarding tool result received outside a pending tool call")
                return

            self._messages.append({"role": "user", "content": first_input})
            yield {
                "type": "system",
                "subtype": "init",
                "model": self._model,
                "tools": self.tool_names,
            }

            num_turns = 0
            usage_totals = {"input_tokens": 0, "output_tokens": 0}
            while True:
                num_turns += 1
                message, tool_use_blocks, stop_reason, usage = await self._until_interrupted(
                    self._stream_chat()
                )
                usage_totals["input_tokens"] += usage.get("input_tokens", 0)
                usage_totals["output_tokens"] += usage.get("output_tokens", 0)
                self._messages.append(message)
                yield {"type": "assistant", "message": message}

                if not tool_use_blocks:
                    yield {
                        "type": "result",
                        "subtype": "success",
                        "is_error": False,
                        "stop_reason": stop_reason,
                        "num_turns": num_turns,
                        "usage": usage_totals,
                    }
                    return

                tool_results: list[dict] = []
                for block in tool_use_blocks:
                    if block["name"] in self._interactive_names:
                        tool_results.append(await self._await_user_reply(block))
                    else:
                        tool_results.append(await self._until_interrupted(self.execute_tool(block)))

                tool_message = {"role": "user", "content": tool_results}
                self._messages.append(tool_message)
                yield {"type": "user", "message": tool_message}
        except _Interrupted:
            self._close_dangling_tool_calls()
            logger.debug("Agent stream ended by interrupt")

    def _close_dangling_tool_calls(self) -> None:
        # The API rejects a tool_use turn that is not followed by its results.
        if not self._messages or self._messages[-1]["role"] != "assistant":
            return
        pending = [
            b for b in self._messages[-1]["content"]
            if isinstance(b, dict) and b.get("type") == "tool_use"
        ]
        if not pending:
            return
        self._messages.append(
            {
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": b["id"],
                        "content": "Interrupted by user",
                        "is_error": True,
                    }
                    for b in pending
                ],
            }
        )

    async def _await_user_reply(self, block: dict) -> dict:
        while True:
            reply = await self._until_interrupted(self._inbox.get())
            if isinstance(reply, dict) and reply.get("tool_use_id") == block["id"]:
                result = {
                    "type": "tool_result",
                    "tool_use_id": block["id"],
                    "content": reply.get("content", ""),
                }
                if reply.get("is_error"):
                    result["is_error"] = True
                return result
            logger.warning(f"Ignoring input while waiting for {block['name']} ({block['id']})")

    async def _until_interrupted(self, awaitable: Awaitable[T]) -> T:
        if self._interrupted.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise _Interrupted()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._interrupted.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task in done:
            return task.result()

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise _Interrupted()

    @retry(**default_retry_kwargs())
    async def _stream_chat(self) -> tuple[dict, list[dict], str, dict]:
        logger.debug(
            f"API request: model={self._model}, max_tokens={self._max_tokens}, "
            f"messages={len(self._messages)}, tools={len(self._converted_tools)}"
        )
        async with self._client.messages.stream(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system=self._system_prompt,
            messages=self._messages,
            tools=self._converted_tools,
        ) as stream:
            async for _ in stream:
                pass
            response = await stream.get_final_message()

        usage = response.usage
        logger.debug(
            f"API response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )

        assistant_content: list[dict] = []
        tool_use_blocks: list[dict] = []
        for block in response.content:
            if block.type == "text":
                assistant_content.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                tool_block = {
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": block.input,
                }
                assistant_content.append(tool_block)
                tool_use_blocks.append(tool_block)

        message = {"role": "assistant", "content": assistant_content}
        usage_dict = {"input_tokens": usage.input_tokens, "output_tokens": usage.output_tokens}
        return message, tool_use_blocks, response.stop_reason, usage_dict

    async def execute_tool(self, block: dict) -> dict:
        tool_name = block["name"]
        tool_use_id = block["id"]
        tool = self._tool_map.get(tool_name)

        if tool is None:
            return {
                "type": "tool_result",
                "tool_use_id": tool_use_id,
                "content": f'Error: unknown tool "{tool_name}"',
                "is_error": True,
            }

        try:
            result = await tool.execute(block["input"])
        except Exception as ex:
            return {
                "type": "tool_result",
                "tool_use_id": tool_use_id,
                "content": f'Error executing tool "{tool_name}": {ex}',
                "is_error": True,
            }
        return {
            "type": "tool_result",
            "tool_use_id": tool_use_id,
            "content": self._truncate_tool_result(result, tool_name),
        }

    def _truncate_tool_result(self, result: str, tool_name: str) -> str:
        if self._max_tool_result_chars <= 0 or len(result) <= self._max_tool_result_chars:
            return result

        original_length = len(result)
        truncated = result[: self._max_tool_result_chars]
        message = (
            f"\n\n[OUTPUT TRUNCATED: Showing {self._max_tool_result_chars:,} "
            f"of {original_length:,} characters from {tool_name}]"
        )
        logger.warning(
            f"{tool_name} output truncated from {original_length:,} "
            f"to {self._max_tool_result_chars:,} chars"
        )
        return truncated + message
