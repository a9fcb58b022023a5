from __future__ import annotations

from dataclasses import dataclass

from agent_relay.app_config import AppConfig, RuntimeEnv
from agent_relay.broadcaster import Broadcaster
from agent_relay.collaborator.anthropic_collaborator import AnthropicCollaborator
from agent_relay.collaborator.protocol import AgentCollaborator, CollaboratorTool
from agent_relay.ledger import MessageLedger
from agent_relay.logging_config import setup_logging
from agent_relay.run_state import RunStateMachine
from agent_relay.session_context import SessionContext
from agent_relay.stream_output import StreamJsonRecorder
from agent_relay.system_prompt import build_system_prompt
from agent_relay.tool_registry import get_all


@dataclass
class AppRuntime:
    session: SessionContext
    collaborator: AgentCollaborator
    log_descriptions: list[str]


def build_session(
    app: AppConfig,
    collaborator: AgentCollaborator,
) -> SessionContext:
    ledger = MessageLedger(max_history=app.max_message_history)
    broadcaster = Broadcaster(
        client_timeout_seconds=app.client_timeout_seconds,
        cleanup_interval_seconds=app.cleanup_interval_seconds,
    )
    recorder = StreamJsonRecorder(app.stream_json_output_file) if app.stream_json_output_file else None
    run_state = RunStateMachine(ledger, broadcaster, collaborator, recorder=recorder)
    return SessionContext(ledger=ledger, broadcaster=broadcaster, run_state=run_state, recorder=recorder)


def bootstrap_runtime(
    app: AppConfig,
    env: RuntimeEnv,
    tools: list[CollaboratorTool] | None = None,
) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    if tools is None:
        tools = get_all(
            working_directory=app.working_directory,
            enabled=app.enabled_tools,
            bash_timeout_seconds=app.bash_timeout_seconds,
        )

    collaborator = AnthropicCollaborator(
        api_key=env.anthropic_api_key,
        model=app.model,
        max_tokens=app.max_tokens,
        temperature=app.temperature,
        system_prompt=build_system_prompt(app.working_directory, [t.name for t in tools]),
        tools=tools,
        max_tool_result_chars=app.max_tool_result_chars,
    )

    return AppRuntime(
        session=build_session(app, collaborator),
        collaborator=collaborator,
        log_descriptions=log_descriptions,
    )
