from agent_relay.collaborator.events import (
    AssistantEvent,
    CollaboratorEvent,
    ResultEvent,
    SystemEvent,
    ToolResultBlock,
    ToolResultEvent,
    ToolUseBlock,
    decode_event,
)
from agent_relay.collaborator.protocol import AgentCollaborator, CollaboratorTool

__all__ = [
    "AgentCollaborator",
    "AssistantEvent",
    "CollaboratorEvent",
    "CollaboratorTool",
    "ResultEvent",
    "SystemEvent",
    "ToolResultBlock",
    "ToolResultEvent",
    "ToolUseBlock",
    "decode_event",
]
