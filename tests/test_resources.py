import tempfile
import unittest
from pathlib import Path

from agent_relay.resources import (
    SOURCE_PLUGIN,
    SOURCE_PROJECT,
    SOURCE_USER,
    discover_slash_commands,
    get_available_resources,
    parse_frontmatter,
)


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class ParseFrontmatterTests(unittest.TestCase):
    def test_reads_pairs_and_strips_quotes(self) -> None:
        content = '---\ndescription: "Review the diff"\n# comment\n\nmodel: \'opus\'\nurl: http://x\n---\nBody'
        self.assertEqual(
            {"description": "Review the diff", "model": "opus", "url": "http://x"},
            parse_frontmatter(content),
        )

    def test_missing_or_unterminated_block(self) -> None:
        self.assertEqual({}, parse_frontmatter("Just a body"))
        self.assertEqual({}, parse_frontmatter("---\ndescription: x\nno end"))


class DiscoverSlashCommandsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        root = Path(self._tmp.name)
        self.project = root / "project"
        self.home = root / "home"
        self.plugin = root / "plugins" / "reviewer"

        _write(self.plugin / "commands" / "review.md", "---\ndescription: Review changes\n---\nReview $ARGUMENTS")
        _write(self.project / ".claude" / "commands" / "deploy.md", "Deploy the app")
        _write(self.project / ".claude" / "commands" / "notes.txt", "not a command")
        _write(
            self.project / ".claude" / "commands" / "internal.md",
            '---\nhide-from-slash-command-tool: "true"\n---\nhidden',
        )
        _write(self.home / ".claude" / "commands" / "standup.md", "---\ndescription: Daily notes\n---\n")

    def test_collects_plugin_project_and_user_commands_in_order(self) -> None:
        commands = discover_slash_commands(str(self.project), [str(self.plugin)], home=str(self.home))

        self.assertEqual(["review", "deploy", "standup"], [c.name for c in commands])
        self.assertEqual([SOURCE_PLUGIN, SOURCE_PROJECT, SOURCE_USER], [c.source for c in commands])
        self.assertEqual("reviewer", commands[0].plugin_name)
        self.assertEqual("Review changes", commands[0].description)
        self.assertIsNone(commands[1].description)
        self.assertTrue(commands[1].file_path.endswith("deploy.md"))

    def test_missing_directories_yield_nothing(self) -> None:
        empty = Path(self._tmp.name) / "empty"
        self.assertEqual([], discover_slash_commands(str(empty), [str(empty / "plugin")], home=str(empty)))


class GetAvailableResourcesTests(unittest.TestCase):
    def test_lists_skills_commands_and_slash_commands(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            _write(root / "project" / ".claude" / "commands" / "deploy.md", "---\ndescription: Ship it\n---\n")
            resources = get_available_resources(
                plugins={
                    "search": {"description": "Web search", "config": {"engine": "x"}},
                    "off": {"enabled": False},
                },
                plugin_paths=[str(root / "plugins" / "linter")],
                commands={"test": {"command": "pytest", "description": "Run tests"}},
                working_directory=str(root / "project"),
                home=str(root / "home"),
            )
            dicts = [r.to_dict() for r in resources]

        self.assertEqual(
            [("skill", "search"), ("skill", "linter"), ("command", "test"), ("slash_command", "deploy")],
            [(r.type, r.name) for r in resources],
        )
        self.assertEqual({"engine": "x"}, dicts[0]["metadata"])
        self.assertTrue(dicts[1]["description"].startswith("Plugin from "))
        self.assertEqual("Run tests", dicts[2]["description"])
        self.assertEqual("project", dicts[3]["metadata"]["source"])
        self.assertNotIn("pluginName", dicts[3]["metadata"])

    def test_nothing_configured(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertEqual([], get_available_resources(working_directory=tmp, home=tmp))


if __name__ == "__main__":
    unittest.main()
