from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from loguru import logger

from agent_relay.broadcaster import Broadcaster, Subscriber
from agent_relay.ledger import MessageLedger, PageResult
from agent_relay.messages import Message
from agent_relay.pagination import PaginationQuery, parse_pagination_params
from agent_relay.run_state import RunStateMachine
from agent_relay.stream_output import StreamJsonRecorder


@dataclass
class SessionContext:
    """The one live session: built once at startup and handed to every handler."""

    ledger: MessageLedger
    broadcaster: Broadcaster
    run_state: RunStateMachine
    recorder: StreamJsonRecorder | None = None

    def connect_observer(self, subscriber: Subscriber) -> None:
        # No await between snapshot and subscribe: nothing can reach the
        # subscriber ahead of its init event.
        self.broadcaster.send_initial_state(subscriber, self.ledger.all(), self.run_state.get_status())
        self.broadcaster.subscribe(subscriber)
        logger.info(f"Client {subscriber.id} connected")

    def disconnect_observer(self, subscriber_id: str) -> None:
        self.broadcaster.unsubscribe(subscriber_id)

    def query_messages(self, params: PaginationQuery | Mapping[str, object] | None = None) -> PageResult:
        if params is None or isinstance(params, PaginationQuery):
            return self.ledger.query(params)
        return self.ledger.query(parse_pagination_params(params))

    def get_active_tool_executions(self) -> list[Message]:
        return self.run_state.get_active_tool_executions()

    async def close(self) -> None:
        await self.run_state.stop_agent()
        await self.broadcaster.close()
        if self.recorder is not None:
            self.recorder.close()
        logger.info("Session closed")
