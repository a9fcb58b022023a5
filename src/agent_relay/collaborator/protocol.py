from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class AgentCollaborator(Protocol):
    async def send(self, payload: str | dict) -> None:
        """Deliver user text, or a tool_result block answering a pending tool call."""
        ...

    def stream(self) -> AsyncIterator[dict]:
        """Yield the raw events of the current run until it completes or is interrupted."""
        ...

    async def interrupt(self) -> None:
        """Stop the current run; the active stream() ends without further events."""
        ...


@runtime_checkable
class CollaboratorTool(Protocol):
    """A tool the collaborator can run on its own, without asking the session."""

    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def input_schema(self) -> dict[str, Any]: ...

    async def execute(self, tool_input: dict[str, Any]) -> str: ...
