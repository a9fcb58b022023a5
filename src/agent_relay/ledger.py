from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from agent_relay.messages import TYPE_NORMAL, Message, utc_now
from agent_relay.pagination import (
    DEFAULT_AROUND_CONTEXT,
    DIRECTION_HEAD,
    MODE_ALL,
    MODE_AROUND,
    MODE_HEAD_TAIL,
    PaginationQuery,
)

DEFAULT_MAX_HISTORY = 100


@dataclass
class PageResult:
    messages: list[Message] = field(default_factory=list)
    total: int = 0
    has_more: bool = False

    def to_dict(self) -> dict:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "total": self.total,
            "hasMore": self.has_more,
        }


class MessageLedger:
    """Append-only, id-ordered history of the session's messages.

    Ids come from a counter that is never rewound, so they stay unique
    after the oldest entries are trimmed. Because only a prefix is ever
    removed, the surviving ids are consecutive and a message can be
    located by offset from the first id.
    """

    def __init__(self, max_history: int = DEFAULT_MAX_HISTORY):
        self._max_history = max_history
        self._messages: list[Message] = []
        self._next_id = 0

    @property
    def max_history(self) -> int:
        return self._max_history

    def __len__(self) -> int:
        return len(self._messages)

    def append(
        self,
        role: str,
        content: str,
        type: str = TYPE_NORMAL,
        *,
        tool_use_id: str | None = None,
        parent_tool_use_id: str | None = None,
        status: str | None = None,
        error: str | None = None,
    ) -> Message:
        message = Message(
            id=self._next_id,
            role=role,
            content=content,
            time=utc_now(),
            type=type,
            tool_use_id=tool_use_id,
            parent_tool_use_id=parent_tool_use_id,
            status=status,
            error=error,
        )
        self._next_id += 1
        self._messages.append(message)
        self._trim()
        return message

    def _trim(self) -> None:
        if self._max_history <= 0:
            return
        remove_count = len(self._messages) - self._max_history
        if remove_count > 0:
            del self._messages[:remove_count]
            logger.debug(f"Message history trimmed to {self._max_history} messages")

    def all(self) -> list[Message]:
        return list(self._messages)

    def _index_of(self, message_id: int) -> int | None:
        if not self._messages:
            return None
        index = message_id - self._messages[0].id
        if 0 <= index < len(self._messages):
            return index
        return None

    def query(self, query: PaginationQuery | None = None) -> PageResult:
        if query is None:
            query = PaginationQuery()
        query.validate()

        total = len(self._messages)
        mode = query.mode

        if mode == MODE_ALL:
            return PageResult(list(self._messages), total, False)

        if mode == MODE_HEAD_TAIL:
            limit = query.limit or 0
            if query.direction == DIRECTION_HEAD:
                page = self._messages[:limit]
            else:
                page = self._messages[-limit:]
            return PageResult(list(page), total, limit < total)

        if mode == MODE_AROUND:
            return self._query_around(query, total)

        return self._query_cursor(query, total)

    def _query_around(self, query: PaginationQuery, total: int) -> PageResult:
        index = self._index_of(query.around)
        if index is None:
            return PageResult([], total, False)
        context = DEFAULT_AROUND_CONTEXT if query.context is None else query.context
        start = max(0, index - context)
        end = min(total, index + context + 1)
        return PageResult(self._messages[start:end], total, start > 0 or end < total)

    def _query_cursor(self, query: PaginationQuery, total: int) -> PageResult:
        cursor = query.after if query.after is not None else query.before
        index = self._index_of(cursor)
        if index is None:
            # Unknown and trimmed cursors are indistinguishable here.
            return PageResult([], total, False)

        if query.after is not None:
            remaining = self._messages[index + 1:]
            if query.limit is not None and len(remaining) > query.limit:
                return PageResult(remaining[: query.limit], total, True)
            return PageResult(remaining, total, False)

        preceding = self._messages[:index]
        if query.limit is not None and len(preceding) > query.limit:
            return PageResult(preceding[-query.limit:], total, True)
        return PageResult(preceding, total, False)
