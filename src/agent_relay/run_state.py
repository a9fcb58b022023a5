from __future__ import annotations

import asyncio
import json

from loguru import logger

from agent_relay.broadcaster import Broadcaster
from agent_relay.collaborator.events import (
    AssistantEvent,
    CollaboratorEvent,
    ResultEvent,
    SystemEvent,
    ToolResultEvent,
    decode_event,
)
from agent_relay.collaborator.protocol import AgentCollaborator
from agent_relay.errors import (
    AgentBusyError,
    InternalAgentError,
    NoActivePlanError,
    NoActiveQuestionError,
)
from agent_relay.formatting import (
    extract_tool_result_text,
    format_plan,
    format_question,
    format_tool_use,
    summarize_answers,
)
from agent_relay.ledger import MessageLedger
from agent_relay.messages import (
    ROLE_AGENT,
    ROLE_ASSISTANT,
    ROLE_TOOL_RESULT,
    ROLE_USER,
    STATUS_RUNNING,
    STATUS_STABLE,
    TOOL_ERROR,
    TOOL_SUCCESS,
    TYPE_NORMAL,
    TYPE_PLAN,
    TYPE_QUESTION,
    Message,
)
from agent_relay.stream_output import StreamJsonRecorder

QUESTION_TOOL_NAME = "AskUserQuestion"
PLAN_TOOL_NAME = "ExitPlanMode"


class RunStateMachine:
    """Tracks whether the agent is busy and which interactions and tools are outstanding.

    All checks and the mutations they guard happen without an intervening
    await, which is what keeps two near-simultaneous sends from both
    observing ``stable`` on a single-threaded event loop.
    """

    def __init__(
        self,
        ledger: MessageLedger,
        broadcaster: Broadcaster,
        collaborator: AgentCollaborator,
        *,
        recorder: StreamJsonRecorder | None = None,
    ):
        self._ledger = ledger
        self._broadcaster = broadcaster
        self._collaborator = collaborator
        self._recorder = recorder
        self._status = STATUS_STABLE
        self._pending_question_tool_use_id: str | None = None
        self._pending_plan_tool_use_id: str | None = None
        self._interaction_messages: dict[str, Message] = {}
        self._active_tools: dict[str, Message] = {}
        self._run_task: asyncio.Task | None = None
        self._stopping = False

    @property
    def status(self) -> str:
        return self._status

    @property
    def pending_question_tool_use_id(self) -> str | None:
        return self._pending_question_tool_use_id

    @property
    def pending_plan_tool_use_id(self) -> str | None:
        return self._pending_plan_tool_use_id

    def get_status(self) -> str:
        return self._status

    def get_messages(self) -> list[Message]:
        return self._ledger.all()

    def get_active_tool_executions(self) -> list[Message]:
        return list(self._active_tools.values())

    def get_pending_actions(self) -> list[dict]:
        actions: list[dict] = []
        if self._pending_question_tool_use_id is not None:
            actions.append(self._pending_action("answer_question", self._pending_question_tool_use_id))
        if self._pending_plan_tool_use_id is not None:
            actions.append(self._pending_action("approve_plan", self._pending_plan_tool_use_id))
        return actions

    def _pending_action(self, action_type: str, tool_use_id: str) -> dict:
        message = self._interaction_messages.get(tool_use_id)
        return {
            "type": action_type,
            "toolUseId": tool_use_id,
            "content": message.content if message is not None else "",
        }

    # -- operations -----------------------------------------------------

    async def send_message(self, content: str) -> Message:
        if self._status != STATUS_STABLE:
            raise AgentBusyError()
        self._set_status(STATUS_RUNNING)
        self._run_task = None

        user_message = self._append(ROLE_USER, content)

        logger.info("Sending message to agent...")
        try:
            await self._collaborator.send(content)
        except Exception as ex:
            logger.error(f"Failed to send message to agent: {ex}")
            self._set_status(STATUS_STABLE)
            raise InternalAgentError(f"Failed to send message to agent: {ex}") from ex

        if self._status != STATUS_RUNNING:
            # Stopped while the send was in flight.
            return user_message
        self._run_task = asyncio.create_task(self._consume_run())
        return user_message

    async def send_action(self, answers: dict[str, str]) -> None:
        tool_use_id = self._pending_question_tool_use_id
        if self._status != STATUS_RUNNING or tool_use_id is None:
            raise NoActiveQuestionError()
        self._pending_question_tool_use_id = None
        self._interaction_messages.pop(tool_use_id, None)

        self._append(ROLE_USER, summarize_answers(answers))
        await self._forward_tool_result(tool_use_id, {"answers": answers})
        logger.info(f"Answered question {tool_use_id}")

    async def approve_plan(self, approved: bool) -> None:
        tool_use_id = self._pending_plan_tool_use_id
        if self._status != STATUS_RUNNING or tool_use_id is None:
            raise NoActivePlanError()
        self._pending_plan_tool_use_id = None
        self._interaction_messages.pop(tool_use_id, None)

        await self._forward_tool_result(tool_use_id, {"approved": bool(approved)})
        logger.info(f"Plan {tool_use_id} {'approved' if approved else 'rejected'}")

    async def stop_agent(self) -> None:
        task = self._run_task
        if self._status == STATUS_STABLE and (task is None or task.done()):
            logger.debug("Stop requested while agent is already stable")
            return

        logger.info("Stopping agent...")
        self._stopping = True
        try:
            interrupted = True
            try:
                await self._collaborator.interrupt()
            except Exception as ex:
                interrupted = False
                logger.error(f"Error interrupting agent: {ex}")

            if task is not None and not task.done():
                if not interrupted:
                    # The stream was never told to stop, so it may never end on its own.
                    task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    current = asyncio.current_task()
                    if interrupted or (current is not None and current.cancelling()):
                        raise
                    logger.warning("Agent run cancelled after failed interrupt")
                except Exception as ex:
                    logger.error(f"Agent run ended with error during stop: {ex}")

            self._pending_question_tool_use_id = None
            self._pending_plan_tool_use_id = None
            self._interaction_messages.clear()
            self._active_tools.clear()
        finally:
            self._stopping = False
        self._set_status(STATUS_STABLE)

    async def wait_for_run(self) -> None:
        task = self._run_task
        if task is not None and not task.done():
            await task

    # -- event intake ---------------------------------------------------

    async def _consume_run(self) -> None:
        logger.info("Receiving agent response...")
        completed = False
        try:
            async for raw in self._collaborator.stream():
                if self.handle_raw_event(raw):
                    completed = True
        except Exception as ex:
            logger.error(f"Agent stream failed ({InternalAgentError.kind}): {ex}")

        if asyncio.current_task() is not self._run_task:
            # A newer run owns the status now.
            return
        if not completed and self._status == STATUS_RUNNING:
            logger.warning("Agent stream ended without a result event")
        self._finish_run()

    def handle_raw_event(self, raw: object) -> bool:
        """Apply one raw collaborator event. Returns True when it completes the run."""
        if self._recorder is not None:
            self._recorder.record(raw)
        logger.debug(f"Processing agent event: {raw!r}")

        try:
            event = decode_event(raw)
        except ValueError as ex:
            logger.warning(f"Skipping malformed agent event: {ex}")
            return False
        if event is None:
            return False

        try:
            return self.handle_event(event)
        except Exception as ex:
            logger.error(f"Error processing agent event ({InternalAgentError.kind}): {ex}")
            return False

    def handle_event(self, event: CollaboratorEvent) -> bool:
        if isinstance(event, AssistantEvent):
            self._on_assistant(event)
        elif isinstance(event, ToolResultEvent):
            self._on_tool_results(event)
        elif isinstance(event, ResultEvent):
            self._on_result(event)
            return True
        elif isinstance(event, SystemEvent):
            logger.debug(f"Agent system event: {event.subtype}")
        return False

    def _on_assistant(self, event: AssistantEvent) -> None:
        text = "\n".join(event.texts)
        if text.strip():
            self._append(ROLE_ASSISTANT, text)

        for tool_use in event.tool_uses:
            agent_message = self._append(ROLE_AGENT, format_tool_use(tool_use), tool_use_id=tool_use.id)
            self._active_tools[tool_use.id] = agent_message

            if tool_use.name == QUESTION_TOOL_NAME:
                question = self._append(ROLE_ASSISTANT, format_question(tool_use.input), TYPE_QUESTION)
                self._interaction_messages[tool_use.id] = question
                self._pending_question_tool_use_id = tool_use.id
                logger.info(f"{QUESTION_TOOL_NAME} detected and broadcasted")
            elif tool_use.name == PLAN_TOOL_NAME:
                plan = self._append(ROLE_ASSISTANT, format_plan(tool_use.input), TYPE_PLAN)
                self._interaction_messages[tool_use.id] = plan
                self._pending_plan_tool_use_id = tool_use.id
                logger.info(f"{PLAN_TOOL_NAME} detected and broadcasted")

    def _on_tool_results(self, event: ToolResultEvent) -> None:
        for result in event.results:
            text = extract_tool_result_text(result.content)
            self._append(
                ROLE_TOOL_RESULT,
                text,
                parent_tool_use_id=result.tool_use_id,
                status=TOOL_ERROR if result.is_error else TOOL_SUCCESS,
                error=text if result.is_error else None,
            )
            if self._active_tools.pop(result.tool_use_id, None) is None:
                logger.debug(f"Tool result {result.tool_use_id} has no active tool execution")

            if result.tool_use_id == self._pending_question_tool_use_id:
                self._pending_question_tool_use_id = None
                self._interaction_messages.pop(result.tool_use_id, None)
            if result.tool_use_id == self._pending_plan_tool_use_id:
                self._pending_plan_tool_use_id = None
                self._interaction_messages.pop(result.tool_use_id, None)

    def _on_result(self, event: ResultEvent) -> None:
        if event.is_error:
            logger.warning(f"Agent run finished with error result: {event.subtype}")
        self._finish_run()
        logger.info("Agent processing complete")

    # -- helpers --------------------------------------------------------

    def _append(self, role: str, content: str, type: str = TYPE_NORMAL, **extra: str | None) -> Message:
        message = self._ledger.append(role, content, type, **extra)
        self._broadcaster.broadcast_message_update(message)
        return message

    async def _forward_tool_result(self, tool_use_id: str, payload: dict) -> None:
        try:
            await self._collaborator.send(
                {
                    "type": "tool_result",
                    "tool_use_id": tool_use_id,
                    "content": json.dumps(payload, ensure_ascii=False),
                }
            )
        except Exception as ex:
            logger.error(f"Failed to forward tool result {tool_use_id}: {ex}")
            raise InternalAgentError(f"Failed to forward tool result: {ex}") from ex

    def _finish_run(self) -> None:
        if self._stopping:
            # stop_agent clears outstanding state first, then reports stable itself.
            return
        self._set_status(STATUS_STABLE)

    def _set_status(self, status: str) -> None:
        if self._status == status:
            return
        self._status = status
        self._broadcaster.broadcast_status_change(status)
        logger.info(f"Agent status changed to: {status}")
