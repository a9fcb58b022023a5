import unittest

from agent_relay.collaborator.events import (
    AssistantEvent,
    ResultEvent,
    SystemEvent,
    ToolResultEvent,
    ToolUseBlock,
    decode_event,
)
from tests.fakes import assistant_text, assistant_tool_use, tool_result


class DecodeEventTests(unittest.TestCase):
    def test_assistant_text_and_tool_use(self) -> None:
        raw = assistant_tool_use("t1", "bash", {"command": "ls"})
        raw["message"]["content"].insert(0, {"type": "text", "text": "Looking"})

        event = decode_event(raw)

        self.assertIsInstance(event, AssistantEvent)
        self.assertEqual(("Looking",), event.texts)
        self.assertEqual((ToolUseBlock(id="t1", name="bash", input={"command": "ls"}),), event.tool_uses)

    def test_assistant_string_content_is_text(self) -> None:
        event = decode_event({"type": "assistant", "message": {"content": "plain"}})
        self.assertEqual(("plain",), event.texts)

    def test_user_event_with_tool_results(self) -> None:
        event = decode_event(tool_result("t1", "out", is_error=True))
        self.assertIsInstance(event, ToolResultEvent)
        self.assertEqual("t1", event.results[0].tool_use_id)
        self.assertTrue(event.results[0].is_error)

    def test_user_event_without_tool_results_is_ignored(self) -> None:
        self.assertIsNone(decode_event({"type": "user", "message": {"content": "echo of prompt"}}))

    def test_system_and_result(self) -> None:
        system = decode_event({"type": "system", "subtype": "init", "model": "m"})
        result = decode_event({"type": "result", "subtype": "error_max_turns", "is_error": True, "num_turns": 3})

        self.assertEqual(SystemEvent(subtype="init", data={"model": "m"}), system)
        self.assertIsInstance(result, ResultEvent)
        self.assertTrue(result.is_error)
        self.assertEqual({"num_turns": 3}, result.data)

    def test_unknown_type_is_ignored(self) -> None:
        self.assertIsNone(decode_event({"type": "stream_event"}))

    def test_malformed_events_raise(self) -> None:
        for raw in (
            None,
            "assistant",
            {"message": {}},
            {"type": "assistant", "message": "nope"},
            {"type": "assistant", "message": {"content": 5}},
            {"type": "assistant", "message": {"content": [{"type": "tool_use", "id": "t1"}]}},
            {"type": "user", "message": {"content": [{"type": "tool_result", "content": "x"}]}},
        ):
            with self.subTest(raw=raw):
                with self.assertRaises(ValueError):
                    decode_event(raw)

    def test_non_dict_blocks_are_skipped(self) -> None:
        raw = assistant_text("kept")
        raw["message"]["content"].append("junk")
        self.assertEqual(("kept",), decode_event(raw).texts)


if __name__ == "__main__":
    unittest.main()
