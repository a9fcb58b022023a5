"""Discovery of the skills, plugins and slash commands available to the session.

Slash commands are markdown files, looked up in three places in order:
``<plugin>/commands/*.md`` for every configured plugin path,
``<working dir>/.claude/commands/*.md`` and ``~/.claude/commands/*.md``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

SOURCE_PLUGIN = "plugin"
SOURCE_PROJECT = "project"
SOURCE_USER = "user"

_FRONTMATTER = re.compile(r"\A---\r?\n(.*?)\r?\n---", re.DOTALL)


@dataclass(frozen=True)
class SlashCommandInfo:
    name: str
    source: str
    file_path: str
    description: str | None = None
    plugin_name: str | None = None


@dataclass(frozen=True)
class Resource:
    type: str
    name: str
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data: dict = {"type": self.type, "name": self.name}
        if self.description is not None:
            data["description"] = self.description
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data


def parse_frontmatter(content: str) -> dict[str, str]:
    """Read ``key: value`` pairs from a leading ``---`` block. Quotes around values are dropped."""
    match = _FRONTMATTER.match(content)
    if not match:
        return {}

    result: dict[str, str] = {}
    for line in match.group(1).split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition(":")
        if not sep:
            continue
        value = value.strip()
        if value[:1] in ("'", '"'):
            value = value[1:]
        if value[-1:] in ("'", '"'):
            value = value[:-1]
        result[key.strip()] = value
    return result


def _list_md_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        logger.debug(f"Slash command directory not found: {directory}")
        return []
    try:
        return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ".md")
    except OSError as ex:
        logger.debug(f"Slash command directory unreadable: {directory} ({ex})")
        return []


def _parse_command_file(path: Path, source: str, plugin_name: str | None = None) -> SlashCommandInfo | None:
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as ex:
        logger.warning(f"Failed to read command file {path}: {ex}")
        return None

    frontmatter = parse_frontmatter(content)
    if frontmatter.get("hide-from-slash-command-tool") == "true":
        logger.debug(f"Skipping hidden command: {path}")
        return None

    return SlashCommandInfo(
        name=path.stem,
        source=source,
        file_path=str(path),
        description=frontmatter.get("description"),
        plugin_name=plugin_name,
    )


def _collect(directory: Path, source: str, plugin_name: str | None = None) -> list[SlashCommandInfo]:
    found = []
    for path in _list_md_files(directory):
        info = _parse_command_file(path, source, plugin_name)
        if info is not None:
            found.append(info)
    return found


def discover_slash_commands(
    working_directory: str | None = None,
    plugin_paths: list[str] | tuple[str, ...] = (),
    *,
    home: str | None = None,
) -> list[SlashCommandInfo]:
    commands: list[SlashCommandInfo] = []
    for plugin_path in plugin_paths:
        plugin_dir = Path(plugin_path)
        found = _collect(plugin_dir / "commands", SOURCE_PLUGIN, plugin_dir.name)
        logger.debug(f"Found {len(found)} slash commands in plugin: {plugin_dir.name}")
        commands.extend(found)

    project_root = Path(working_directory) if working_directory else Path.cwd()
    commands.extend(_collect(project_root / ".claude" / "commands", SOURCE_PROJECT))

    home_dir = Path(home) if home else Path.home()
    commands.extend(_collect(home_dir / ".claude" / "commands", SOURCE_USER))

    logger.debug(f"Total slash commands discovered: {len(commands)}")
    return commands


def get_available_resources(
    *,
    plugins: dict[str, dict] | None = None,
    plugin_paths: list[str] | tuple[str, ...] = (),
    commands: dict[str, dict] | None = None,
    working_directory: str | None = None,
    home: str | None = None,
) -> list[Resource]:
    """Skills (configured and path-based plugins), configured commands and discovered slash commands."""
    resources: list[Resource] = []

    for name, plugin in (plugins or {}).items():
        if plugin.get("enabled", True) is False:
            continue
        resources.append(
            Resource("skill", name, plugin.get("description"), dict(plugin.get("config") or {}))
        )

    for plugin_path in plugin_paths:
        resources.append(
            Resource(
                "skill",
                Path(plugin_path).name or plugin_path,
                f"Plugin from {plugin_path}",
                {"path": plugin_path, "source": "config.json"},
            )
        )

    for name, command in (commands or {}).items():
        resources.append(Resource("command", name, command.get("description"), {"command": command.get("command")}))

    for info in discover_slash_commands(working_directory, plugin_paths, home=home):
        metadata: dict[str, Any] = {"source": info.source, "filePath": info.file_path}
        if info.plugin_name:
            metadata["pluginName"] = info.plugin_name
        resources.append(Resource("slash_command", info.name, info.description, metadata))

    logger.debug(f"Found {len(resources)} resources")
    return resources
