from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class RuntimeEnv:
    anthropic_api_key: str


@dataclass
class AppConfig:
    model: str
    max_tokens: int
    temperature: float
    max_tool_result_chars: int
    max_message_history: int
    client_timeout_ms: int
    cleanup_interval_ms: int
    stream_json_output_file: str | None
    working_directory: str | None
    log_level: str
    log_consumers: list | None
    enabled_tools: list[str] = field(default_factory=lambda: ["bash", "read_file"])
    bash_timeout_seconds: float = 30.0
    plugins: dict = field(default_factory=dict)
    plugin_paths: list[str] = field(default_factory=list)
    commands: dict = field(default_factory=dict)

    @property
    def client_timeout_seconds(self) -> float:
        return self.client_timeout_ms / 1000

    @property
    def cleanup_interval_seconds(self) -> float:
        return self.cleanup_interval_ms / 1000


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _pick(config: dict, key: str, environ: Mapping[str, str], env_var: str, default: object) -> object:
    """Environment variables win over config.json, which wins over the default."""
    value = environ.get(env_var)
    if value is not None and value.strip():
        return value.strip()
    return config.get(key, default)


def parse_app_config(config: dict, environ: Mapping[str, str] | None = None) -> AppConfig:
    if environ is None:
        environ = os.environ
    stream_json_output_file = str(
        _pick(config, "StreamJsonOutputFile", environ, "STREAM_JSON_OUTPUT_FILE", "")
    ).strip()
    working_directory = _pick(config, "WorkingDirectory", environ, "CLAUDE_WORKING_DIRECTORY", None)
    return AppConfig(
        model=str(_pick(config, "Model", environ, "CLAUDE_MODEL", "claude-sonnet-4-5-20250929")),
        max_tokens=int(config.get("MaxTokens", 8192)),
        temperature=float(config.get("Temperature", 1.0)),
        max_tool_result_chars=int(config.get("MaxToolResultChars", 40_000)),
        max_message_history=int(_pick(config, "MaxMessageHistory", environ, "MAX_MESSAGE_HISTORY", 100)),
        client_timeout_ms=int(_pick(config, "ClientTimeoutMs", environ, "CLIENT_TIMEOUT_MS", 300_000)),
        cleanup_interval_ms=int(_pick(config, "CleanupIntervalMs", environ, "CLEANUP_INTERVAL_MS", 60_000)),
        stream_json_output_file=stream_json_output_file or None,
        working_directory=str(working_directory) if working_directory else None,
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
        enabled_tools=list(config.get("Tools", ["bash", "read_file"])),
        bash_timeout_seconds=float(config.get("BashTimeoutSeconds", 30.0)),
        plugins=dict(config.get("Plugins", {})),
        plugin_paths=list(config.get("PluginPaths", [])),
        commands=dict(config.get("Commands", {})),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""))
