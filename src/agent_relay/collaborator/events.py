from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: Any


@dataclass(frozen=True)
class ToolResultBlock:
    tool_use_id: str
    content: Any
    is_error: bool = False


@dataclass(frozen=True)
class SystemEvent:
    subtype: str
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AssistantEvent:
    texts: tuple[str, ...] = ()
    tool_uses: tuple[ToolUseBlock, ...] = ()


@dataclass(frozen=True)
class ToolResultEvent:
    results: tuple[ToolResultBlock, ...] = ()


@dataclass(frozen=True)
class ResultEvent:
    subtype: str = "success"
    is_error: bool = False
    data: dict = field(default_factory=dict)


CollaboratorEvent = SystemEvent | AssistantEvent | ToolResultEvent | ResultEvent


def _content_blocks(raw: dict) -> list:
    message = raw.get("message")
    if message is None:
        return []
    if not isinstance(message, dict):
        raise ValueError(f"{raw.get('type')} event has a non-object message")
    content = message.get("content", [])
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if not isinstance(content, list):
        raise ValueError(f"{raw.get('type')} event content must be a list")
    return content


def _decode_assistant(raw: dict) -> AssistantEvent:
    texts: list[str] = []
    tool_uses: list[ToolUseBlock] = []
    for block in _content_blocks(raw):
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            texts.append(str(block.get("text", "")))
        elif block_type == "tool_use":
            tool_use_id = block.get("id")
            name = block.get("name")
            if not tool_use_id or not name:
                raise ValueError("tool_use block is missing its id or name")
            tool_uses.append(ToolUseBlock(id=str(tool_use_id), name=str(name), input=block.get("input")))
    return AssistantEvent(texts=tuple(texts), tool_uses=tuple(tool_uses))


def _decode_tool_results(raw: dict) -> ToolResultEvent | None:
    results: list[ToolResultBlock] = []
    for block in _content_blocks(raw):
        if not isinstance(block, dict) or block.get("type") != "tool_result":
            continue
        tool_use_id = block.get("tool_use_id")
        if not tool_use_id:
            raise ValueError("tool_result block is missing tool_use_id")
        results.append(
            ToolResultBlock(
                tool_use_id=str(tool_use_id),
                content=block.get("content"),
                is_error=bool(block.get("is_error", False)),
            )
        )
    if not results:
        return None
    return ToolResultEvent(results=tuple(results))


def decode_event(raw: Any) -> CollaboratorEvent | None:
    """Decode one raw collaborator event.

    Returns None for event kinds the session does not track. Raises
    ValueError when the payload is malformed.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Collaborator event must be an object, got {type(raw).__name__}")

    event_type = raw.get("type")
    if event_type == "assistant":
        return _decode_assistant(raw)
    if event_type == "user":
        return _decode_tool_results(raw)
    if event_type == "system":
        data = {k: v for k, v in raw.items() if k not in ("type", "subtype")}
        return SystemEvent(subtype=str(raw.get("subtype", "")), data=data)
    if event_type == "result":
        data = {k: v for k, v in raw.items() if k not in ("type", "subtype", "is_error")}
        return ResultEvent(
            subtype=str(raw.get("subtype", "success")),
            is_error=bool(raw.get("is_error", False)),
            data=data,
        )
    if event_type is None:
        raise ValueError("Collaborator event has no type")
    return None
