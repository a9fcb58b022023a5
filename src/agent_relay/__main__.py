import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from agent_relay.app_config import load_json_config, parse_app_config, resolve_runtime_env
from agent_relay.bootstrap import bootstrap_runtime
from agent_relay.console import ConsoleController, ConsoleSubscriber


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()
    if not env.anthropic_api_key:
        print("ANTHROPIC_API_KEY environment variable is required.", file=sys.stderr)
        sys.exit(1)

    runtime = bootstrap_runtime(app, env)
    session = runtime.session
    tool_names = getattr(runtime.collaborator, "tool_names", [])
    controller = ConsoleController(
        session,
        tool_names=tool_names,
        commands=app.commands,
        plugins=app.plugins,
        plugin_paths=app.plugin_paths,
        working_directory=app.working_directory,
        command_timeout_seconds=app.bash_timeout_seconds,
    )

    print("agent-relay (type 'exit' to quit, '/help' for commands)")
    print(f"Model: {app.model}")
    print(f"History limit: {app.max_message_history} messages")
    if app.stream_json_output_file:
        print(f"Recording events to: {app.stream_json_output_file}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    session.connect_observer(ConsoleSubscriber())

    try:
        while True:
            try:
                user_input = await asyncio.to_thread(input, "you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            try:
                await controller.handle(trimmed)
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        await session.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
