import asyncio
import json
import tempfile
import unittest
from pathlib import Path

from agent_relay.broadcaster import Broadcaster
from agent_relay.errors import AgentBusyError, InternalAgentError, NoActivePlanError, NoActiveQuestionError
from agent_relay.ledger import MessageLedger
from agent_relay.run_state import RunStateMachine
from agent_relay.stream_output import StreamJsonRecorder
from tests.fakes import (
    RecordingSubscriber,
    ScriptedCollaborator,
    assistant_text,
    assistant_tool_use,
    result_event,
    tool_result,
)


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


class _FailingSendCollaborator(ScriptedCollaborator):
    async def send(self, payload):
        raise ConnectionError("pipe closed")


class _FailingInterruptCollaborator(ScriptedCollaborator):
    async def interrupt(self) -> None:
        self.interrupt_calls += 1
        raise ConnectionError("control channel closed")


class _StateSnapshotSubscriber(RecordingSubscriber):
    """Captures run state at the moment each status change arrives."""

    def __init__(self, subscriber_id: str):
        super().__init__(subscriber_id)
        self.machine = None
        self.snapshots: list[tuple[str, list, list]] = []

    def send(self, event, data) -> None:
        super().send(event, data)
        if event == "status_change" and self.machine is not None:
            self.snapshots.append(
                (
                    data["status"],
                    self.machine.get_pending_actions(),
                    self.machine.get_active_tool_executions(),
                )
            )


def _machine(collaborator=None, *, recorder=None):
    ledger = MessageLedger()
    broadcaster = Broadcaster()
    subscriber = RecordingSubscriber("observer")
    broadcaster.subscribe(subscriber)
    collaborator = collaborator or ScriptedCollaborator()
    machine = RunStateMachine(ledger, broadcaster, collaborator, recorder=recorder)
    return machine, ledger, broadcaster, subscriber, collaborator


class SendMessageTests(unittest.TestCase):
    def test_send_appends_user_message_and_goes_running(self) -> None:
        async def go():
            machine, ledger, broadcaster, subscriber, collaborator = _machine()
            message = await machine.send_message("Hello")

            self.assertEqual("running", machine.get_status())
            self.assertEqual(["Hello"], collaborator.sent)
            self.assertEqual("user", message.role)
            self.assertEqual([message], ledger.all())
            self.assertEqual(["status_change", "message_update"], subscriber.names())
            self.assertEqual({"status": "running"}, subscriber.events[0][1])

            collaborator.push(assistant_text("Hi there"), result_event())
            await machine.wait_for_run()

            self.assertEqual("stable", machine.get_status())
            self.assertEqual(["user", "assistant"], [m.role for m in ledger.all()])
            self.assertEqual("Hi there", ledger.all()[-1].content)
            self.assertEqual({"status": "stable"}, subscriber.events[-1][1])
            await broadcaster.close()

        asyncio.run(go())

    def test_concurrent_sends_admit_exactly_one(self) -> None:
        async def go():
            machine, ledger, broadcaster, _, collaborator = _machine()
            results = await asyncio.gather(
                machine.send_message("first"),
                machine.send_message("second"),
                return_exceptions=True,
            )

            busy = [r for r in results if isinstance(r, AgentBusyError)]
            self.assertEqual(1, len(busy))
            self.assertEqual("Busy", busy[0].kind)
            self.assertEqual(1, len(ledger.all()))
            self.assertEqual(1, len(collaborator.sent))

            collaborator.push(result_event())
            await machine.wait_for_run()
            await broadcaster.close()

        asyncio.run(go())

    def test_send_while_running_is_busy(self) -> None:
        async def go():
            machine, ledger, broadcaster, _, collaborator = _machine()
            await machine.send_message("first")
            with self.assertRaises(AgentBusyError):
                await machine.send_message("second")
            self.assertEqual(["first"], [m.content for m in ledger.all()])

            collaborator.push(result_event())
            await machine.wait_for_run()
            await machine.send_message("third")
            self.assertEqual(["first", "third"], [m.content for m in ledger.all()])
            collaborator.push(result_event())
            await machine.wait_for_run()
            await broadcaster.close()

        asyncio.run(go())

    def test_failed_send_returns_to_stable(self) -> None:
        async def go():
            machine, ledger, broadcaster, _, _ = _machine(_FailingSendCollaborator())
            with self.assertRaises(InternalAgentError):
                await machine.send_message("Hello")
            self.assertEqual("stable", machine.get_status())
            self.assertEqual(1, len(ledger.all()))
            await broadcaster.close()

        asyncio.run(go())


class ToolTrackingTests(unittest.TestCase):
    def test_tool_use_then_result_clears_active_execution(self) -> None:
        async def go():
            machine, ledger, broadcaster, _, collaborator = _machine()
            await machine.send_message("list files")

            collaborator.push(assistant_tool_use("toolu_1", "read_file", {"path": "a.txt"}))
            await _settle()

            active = machine.get_active_tool_executions()
            self.assertEqual(["toolu_1"], [m.tool_use_id for m in active])
            self.assertEqual("agent", active[0].role)
            self.assertIn('"name": "read_file"', active[0].content)

            collaborator.push(tool_result("toolu_1", "file body"), result_event())
            await machine.wait_for_run()

            self.assertEqual([], machine.get_active_tool_executions())
            result = ledger.all()[-1]
            self.assertEqual("tool_result", result.role)
            self.assertEqual("toolu_1", result.parent_tool_use_id)
            self.assertEqual("success", result.status)
            self.assertEqual("file body", result.content)
            await broadcaster.close()

        asyncio.run(go())

    def test_error_tool_result_carries_error(self) -> None:
        async def go():
            machine, ledger, broadcaster, _, collaborator = _machine()
            await machine.send_message("go")
            collaborator.push(
                assistant_tool_use("toolu_1", "bash"),
                tool_result("toolu_1", [{"type": "text", "text": "exit 1"}], is_error=True),
                result_event(),
            )
            await machine.wait_for_run()

            result = ledger.all()[-1]
            self.assertEqual("error", result.status)
            self.assertEqual("exit 1", result.error)
            await broadcaster.close()

        asyncio.run(go())

    def test_unmatched_tool_result_is_still_recorded(self) -> None:
        async def go():
            machine, ledger, broadcaster, _, collaborator = _machine()
            await machine.send_message("go")
            collaborator.push(tool_result("toolu_unknown", "orphan"), result_event())
            await machine.wait_for_run()

            self.assertEqual("toolu_unknown", ledger.all()[-1].parent_tool_use_id)
            self.assertEqual([], machine.get_active_tool_executions())
            await broadcaster.close()

        asyncio.run(go())

    def test_text_and_tool_use_in_one_event(self) -> None:
        async def go():
            machine, ledger, broadcaster, _, collaborator = _machine()
            await machine.send_message("go")
            raw = assistant_tool_use("toolu_1", "bash", {"command": "ls"})
            raw["message"]["content"].insert(0, {"type": "text", "text": "Let me look."})
            collaborator.push(raw, result_event())
            await machine.wait_for_run()

            self.assertEqual(["user", "assistant", "agent"], [m.role for m in ledger.all()])
            self.assertEqual(["toolu_1"], [m.tool_use_id for m in machine.get_active_tool_executions()])
            await broadcaster.close()

        asyncio.run(go())


class InteractionTests(unittest.TestCase):
    def test_question_flow(self) -> None:
        async def go():
            machine, ledger, broadcaster, _, collaborator = _machine()
            await machine.send_message("help me choose")
            collaborator.push(
                assistant_tool_use(
                    "toolu_q",
                    "AskUserQuestion",
                    {"questions": [{"question": "Which color?", "options": [{"label": "Red"}]}]},
                )
            )
            await _settle()

            self.assertEqual("toolu_q", machine.pending_question_tool_use_id)
            question = ledger.all()[-1]
            self.assertEqual("question", question.type)
            self.assertIn("Which color?", question.content)
            self.assertEqual(
                [{"type": "answer_question", "toolUseId": "toolu_q", "content": question.content}],
                machine.get_pending_actions(),
            )

            await machine.send_action({"Which color?": "Red"})

            self.assertIsNone(machine.pending_question_tool_use_id)
            self.assertEqual([], machine.get_pending_actions())
            forwarded = collaborator.sent[-1]
            self.assertEqual("tool_result", forwarded["type"])
            self.assertEqual("toolu_q", forwarded["tool_use_id"])
            self.assertEqual({"answers": {"Which color?": "Red"}}, json.loads(forwarded["content"]))
            self.assertEqual("user", ledger.all()[-1].role)
            self.assertIn("Which color?", ledger.all()[-1].content)

            with self.assertRaises(NoActiveQuestionError):
                await machine.send_action({"Which color?": "Blue"})

            collaborator.push(result_event())
            await machine.wait_for_run()
            await broadcaster.close()

        asyncio.run(go())

    def test_plan_flow(self) -> None:
        async def go():
            machine, ledger, broadcaster, _, collaborator = _machine()
            await machine.send_message("plan it")
            collaborator.push(assistant_tool_use("toolu_p", "ExitPlanMode", {"plan": "1. Do it"}))
            await _settle()

            self.assertEqual("toolu_p", machine.pending_plan_tool_use_id)
            plan = ledger.all()[-1]
            self.assertEqual("plan", plan.type)
            self.assertIn("1. Do it", plan.content)
            count_before = len(ledger.all())

            await machine.approve_plan(False)

            self.assertIsNone(machine.pending_plan_tool_use_id)
            self.assertEqual({"approved": False}, json.loads(collaborator.sent[-1]["content"]))
            self.assertEqual(count_before, len(ledger.all()))
            with self.assertRaises(NoActivePlanError):
                await machine.approve_plan(True)

            collaborator.push(result_event())
            await machine.wait_for_run()
            await broadcaster.close()

        asyncio.run(go())

    def test_answer_without_question_is_rejected(self) -> None:
        async def go():
            machine, _, broadcaster, _, collaborator = _machine()
            with self.assertRaises(NoActiveQuestionError) as ctx:
                await machine.send_action({"q": "a"})
            self.assertEqual("NoActiveQuestion", ctx.exception.kind)
            with self.assertRaises(NoActivePlanError):
                await machine.approve_plan(True)

            await machine.send_message("plan it")
            collaborator.push(assistant_tool_use("toolu_p", "ExitPlanMode", {"plan": "x"}))
            await _settle()
            with self.assertRaises(NoActiveQuestionError):
                await machine.send_action({"q": "a"})
            self.assertEqual([], collaborator.sent[1:])

            collaborator.push(result_event())
            await machine.wait_for_run()
            await broadcaster.close()

        asyncio.run(go())

    def test_tool_result_for_pending_question_clears_it(self) -> None:
        async def go():
            machine, _, broadcaster, _, collaborator = _machine()
            await machine.send_message("ask")
            collaborator.push(
                assistant_tool_use("toolu_q", "AskUserQuestion", {"questions": "Proceed?"}),
                tool_result("toolu_q", "Interrupted by user", is_error=True),
            )
            await _settle()

            self.assertIsNone(machine.pending_question_tool_use_id)
            collaborator.push(result_event())
            await machine.wait_for_run()
            await broadcaster.close()

        asyncio.run(go())


class CompletionTests(unittest.TestCase):
    def test_stream_end_without_result_forces_stable(self) -> None:
        async def go():
            machine, _, broadcaster, _, collaborator = _machine()
            await machine.send_message("go")
            collaborator.finish()
            await machine.wait_for_run()
            self.assertEqual("stable", machine.get_status())
            await broadcaster.close()

        asyncio.run(go())

    def test_stream_failure_forces_stable(self) -> None:
        async def go():
            machine, ledger, broadcaster, _, collaborator = _machine()
            await machine.send_message("go")
            collaborator.push(assistant_text("partial"), RuntimeError("stream broke"))
            await machine.wait_for_run()

            self.assertEqual("stable", machine.get_status())
            self.assertEqual("partial", ledger.all()[-1].content)
            await broadcaster.close()

        asyncio.run(go())

    def test_malformed_events_are_skipped(self) -> None:
        async def go():
            machine, ledger, broadcaster, _, collaborator = _machine()
            await machine.send_message("go")
            collaborator.push(
                "not an event",
                {"no": "type"},
                {"type": "assistant", "message": {"content": [{"type": "tool_use", "name": "x"}]}},
                {"type": "mystery"},
                assistant_text("still here"),
                result_event(),
            )
            await machine.wait_for_run()

            self.assertEqual(["go", "still here"], [m.content for m in ledger.all()])
            self.assertEqual("stable", machine.get_status())
            await broadcaster.close()

        asyncio.run(go())

    def test_events_are_recorded(self) -> None:
        async def go(path: str):
            recorder = StreamJsonRecorder(path)
            machine, _, broadcaster, _, collaborator = _machine(recorder=recorder)
            await machine.send_message("go")
            collaborator.push(assistant_text("hi"), result_event())
            await machine.wait_for_run()
            recorder.close()
            await broadcaster.close()

        with tempfile.TemporaryDirectory() as tmp:
            path = str(Path(tmp) / "out" / "stream.jsonl")
            asyncio.run(go(path))
            lines = Path(path).read_text(encoding="utf-8").splitlines()

        self.assertEqual(["assistant", "result"], [json.loads(line)["type"] for line in lines])


class StopAgentTests(unittest.TestCase):
    def test_stop_while_running(self) -> None:
        async def go():
            machine, _, broadcaster, subscriber, collaborator = _machine()
            await machine.send_message("go")
            collaborator.push(
                assistant_tool_use("toolu_1", "bash"),
                assistant_tool_use("toolu_q", "AskUserQuestion", {"questions": "Sure?"}),
            )
            await _settle()
            self.assertEqual(2, len(machine.get_active_tool_executions()))

            await machine.stop_agent()

            self.assertEqual(1, collaborator.interrupt_calls)
            self.assertEqual("stable", machine.get_status())
            self.assertEqual([], machine.get_active_tool_executions())
            self.assertEqual([], machine.get_pending_actions())
            statuses = [data["status"] for name, data in subscriber.events if name == "status_change"]
            self.assertEqual(["running", "stable"], statuses)
            await broadcaster.close()

        asyncio.run(go())

    def test_stop_while_stable_is_a_noop(self) -> None:
        async def go():
            machine, _, broadcaster, subscriber, collaborator = _machine()
            await machine.stop_agent()

            self.assertEqual(0, collaborator.interrupt_calls)
            self.assertEqual("stable", machine.get_status())
            self.assertEqual([], subscriber.events)
            await broadcaster.close()

        asyncio.run(go())

    def test_stop_forces_stable_when_interrupt_fails(self) -> None:
        async def go():
            machine, _, broadcaster, subscriber, collaborator = _machine(_FailingInterruptCollaborator())
            await machine.send_message("go")
            collaborator.push(assistant_tool_use("toolu_1", "bash"))
            await _settle()

            await asyncio.wait_for(machine.stop_agent(), 1.0)

            self.assertEqual(1, collaborator.interrupt_calls)
            self.assertEqual("stable", machine.get_status())
            self.assertEqual([], machine.get_active_tool_executions())
            self.assertEqual({"status": "stable"}, subscriber.events[-1][1])

            await machine.send_message("again")
            self.assertEqual("running", machine.get_status())
            collaborator.push(result_event())
            await machine.wait_for_run()
            await broadcaster.close()

        asyncio.run(go())

    def test_stable_is_reported_after_outstanding_state_is_cleared(self) -> None:
        async def go():
            machine, _, broadcaster, _, collaborator = _machine()
            observer = _StateSnapshotSubscriber("poller")
            observer.machine = machine
            broadcaster.subscribe(observer)

            await machine.send_message("go")
            collaborator.push(
                assistant_tool_use("toolu_1", "bash"),
                assistant_tool_use("toolu_q", "AskUserQuestion", {"questions": "Sure?"}),
            )
            await _settle()
            await machine.stop_agent()
            await broadcaster.close()
            return observer.snapshots

        snapshots = asyncio.run(go())

        self.assertEqual(["running", "stable"], [status for status, _, _ in snapshots])
        self.assertEqual(("stable", [], []), snapshots[-1])

    def test_send_after_stop_is_accepted(self) -> None:
        async def go():
            machine, ledger, broadcaster, _, collaborator = _machine()
            await machine.send_message("first")
            await machine.stop_agent()

            await machine.send_message("second")
            self.assertEqual("running", machine.get_status())
            collaborator.push(result_event())
            await machine.wait_for_run()
            self.assertEqual(["first", "second"], [m.content for m in ledger.all()])
            await broadcaster.close()

        asyncio.run(go())


if __name__ == "__main__":
    unittest.main()
