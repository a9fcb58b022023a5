from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_AGENT = "agent"
ROLE_TOOL_RESULT = "tool_result"
ROLES = frozenset({ROLE_USER, ROLE_ASSISTANT, ROLE_AGENT, ROLE_TOOL_RESULT})

TYPE_NORMAL = "normal"
TYPE_QUESTION = "question"
TYPE_PLAN = "plan"
MESSAGE_TYPES = frozenset({TYPE_NORMAL, TYPE_QUESTION, TYPE_PLAN})

TOOL_SUCCESS = "success"
TOOL_ERROR = "error"

STATUS_STABLE = "stable"
STATUS_RUNNING = "running"


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Message:
    id: int
    role: str
    content: str
    time: str
    type: str = TYPE_NORMAL
    tool_use_id: str | None = None
    parent_tool_use_id: str | None = None
    status: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        data: dict = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "time": self.time,
            "type": self.type,
        }
        if self.tool_use_id is not None:
            data["toolUseId"] = self.tool_use_id
        if self.parent_tool_use_id is not None:
            data["parentToolUseId"] = self.parent_tool_use_id
        if self.status is not None:
            data["status"] = self.status
        if self.error is not None:
            data["error"] = self.error
        return data
