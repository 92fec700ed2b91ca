"""End-to-end tests for the turn and session controller.

The controller runs against the real agent, graph and session store; only
the model client is scripted.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
import json
from pathlib import Path
import tempfile
from typing import Any
import unittest
from unittest.mock import patch

from astreus_cli.agent import AgentRuntime
from astreus_cli.agent.llm import LLMChunk
from astreus_cli.config import Config
from astreus_cli.controller import INTERRUPTED_MARKER, TurnController, payload_text
from astreus_cli.env_store import EnvStore
from astreus_cli.exceptions import CredentialMissingError, ProviderError
from astreus_cli.file_tools import FileTools
from astreus_cli.session_store import SessionStore
from astreus_cli.state import ModalKind, TurnPhase

Reply = list[Any] | Exception


class ScriptedLLM:
    """Fake client replaying one scripted reply per request.

    An ``asyncio.Event`` inside a reply pauses the stream until it is set.
    """

    provider = "openai"
    model = "gpt-4o"

    def __init__(self, replies: list[Reply]) -> None:
        self.replies = list(replies)
        self.requests: list[list[dict[str, Any]]] = []

    async def stream_chat(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]
    ) -> AsyncIterator[LLMChunk]:
        self.requests.append([dict(m) for m in messages])
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        for item in reply:
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            yield item


class FakeFactory:
    def __init__(self, llm: ScriptedLLM) -> None:
        self.llm = llm
        self.cleared = 0

    def get(self, provider: str, model: str) -> ScriptedLLM:
        return self.llm

    def clear(self) -> None:
        self.cleared += 1


def _text(value: str) -> LLMChunk:
    return LLMChunk(kind="content", text=value)


def _call(name: str, **args: Any) -> LLMChunk:
    return LLMChunk(kind="tool_call", tool_name=name, tool_args=args, call_id=f"call-{name}")


class ControllerTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._temp = tempfile.TemporaryDirectory()
        self.root = Path(self._temp.name).resolve()
        (self.root / "work").mkdir()
        self.llm = ScriptedLLM([])
        self.factory = FakeFactory(self.llm)
        self.environ: dict[str, str] = {}
        self.store = SessionStore(self.root / "sessions", self.root / "current-session")
        config = Config().model_dump()
        config["agent"]["retries"] = 0
        self.controller = TurnController(
            config=config,
            store=self.store,
            runtime=AgentRuntime(
                str(self.root / "graphs"), environ={}, llm_factory=self.factory  # type: ignore[arg-type]
            ),
            env=EnvStore(self.root / ".env", environ=self.environ),
            file_tools=FileTools(self.root / "work"),
            tick_interval=60,
        )

    async def asyncSetUp(self) -> None:
        await self.controller.initialize()

    async def asyncTearDown(self) -> None:
        await self.controller.shutdown()

    def tearDown(self) -> None:
        self._temp.cleanup()

    def script(self, *replies: Reply) -> None:
        self.llm.replies.extend(replies)

    def transcript(self) -> list[tuple[str, str]]:
        return [(m.role, m.content) for m in self.controller.messages]

    async def wait_for(self, predicate, attempts: int = 300) -> None:
        for _ in range(attempts):
            if predicate():
                return
            await asyncio.sleep(0.01)
        self.fail("condition not reached")


class TurnTests(ControllerTestCase):
    async def test_streamed_reply_becomes_assistant_message(self) -> None:
        self.script([_text("Hi"), _text(" there")])
        seen_phases: list[TurnPhase] = []
        self.controller.subscribe(lambda: seen_phases.append(self.controller.phase))

        accepted = await self.controller.submit("hello")

        self.assertTrue(accepted)
        self.assertEqual(self.transcript(), [("user", "hello"), ("assistant", "Hi there")])
        self.assertEqual(self.controller.phase, TurnPhase.IDLE)
        self.assertEqual(self.controller.turn_count, 1)
        self.assertIn(TurnPhase.STREAMING, seen_phases)
        record = json.loads(
            (self.root / "sessions" / f"{self.controller.session.id}.json").read_text()
        )
        self.assertEqual([m["content"] for m in record["messages"]], ["hello", "Hi there"])

    async def test_turn_runs_as_graph_node(self) -> None:
        self.script([_text("ok")])
        await self.controller.submit("first")
        graph = self.controller.graph
        self.assertEqual(graph.id, self.controller.session.conversation_handle)
        self.assertEqual([n.name for n in graph.nodes], ["Turn-1"])

    async def test_tool_calls_are_recorded(self) -> None:
        (self.root / "work" / "todo.txt").write_text("x", encoding="utf-8")
        self.script([_call("list_directory", path=".")], [_text("Listed.")])
        await self.controller.submit("what is here?")
        self.assertEqual(len(self.controller.executed_tools), 1)
        executed = self.controller.executed_tools[0]
        self.assertEqual(executed.name, "list_directory")
        self.assertIn("todo.txt", executed.result or "")
        self.assertIsNone(self.controller.turn.active_tool)

    async def test_failure_becomes_system_error(self) -> None:
        self.script(ProviderError("model overloaded"))
        await self.controller.submit("hi")
        self.assertEqual(self.transcript()[-1], ("assistant", "Error: model overloaded"))
        self.assertEqual(self.controller.phase, TurnPhase.IDLE)

    async def test_empty_reply_reports_no_response(self) -> None:
        self.script([])
        await self.controller.submit("hi")
        self.assertEqual(self.transcript()[-1], ("system", "No response from model"))

    async def test_rejected_while_modal_open(self) -> None:
        self.controller.modal = ModalKind.MODEL
        self.assertFalse(await self.controller.submit("hello"))
        self.assertEqual(self.controller.messages, [])

    async def test_question_mark_toggles_shortcuts(self) -> None:
        await self.controller.submit("?")
        self.assertTrue(self.controller.show_shortcuts)
        self.assertEqual(self.controller.messages, [])


class InterruptTests(ControllerTestCase):
    async def test_interrupt_keeps_partial_and_drops_late_chunks(self) -> None:
        gate = asyncio.Event()
        self.script([_text("partial"), gate, _text(" late")])
        submit = asyncio.create_task(self.controller.submit("write a poem"))
        await self.wait_for(lambda: self.controller.turn.accumulated_text == "partial")

        self.assertFalse(await self.controller.submit("another"))
        self.assertTrue(self.controller.interrupt())

        self.assertEqual(self.controller.phase, TurnPhase.IDLE)
        self.assertEqual(self.transcript()[-1], ("assistant", "partial" + INTERRUPTED_MARKER))
        await submit
        gate.set()
        await self.wait_for(lambda: self.controller.graph.status == "completed")

        self.assertEqual(self.transcript()[-1], ("assistant", "partial" + INTERRUPTED_MARKER))
        self.assertEqual(self.controller.turn_count, 0)

        self.script([_text("fresh")])
        await self.controller.submit("again")
        self.assertEqual(self.transcript()[-1], ("assistant", "fresh"))

    async def test_interrupt_without_text_adds_notice(self) -> None:
        gate = asyncio.Event()
        self.script([gate])
        submit = asyncio.create_task(self.controller.submit("hi"))
        await self.wait_for(lambda: self.controller.phase == TurnPhase.SENDING)
        self.controller.interrupt()
        await submit
        self.assertEqual(self.transcript()[-1], ("system", "Interrupted"))
        gate.set()

    async def test_interrupt_when_idle_is_noop(self) -> None:
        self.assertFalse(self.controller.interrupt())


class CredentialTests(ControllerTestCase):
    async def test_missing_key_suspends_and_resubmits(self) -> None:
        self.script(CredentialMissingError("Invalid API key provided"))
        await self.controller.submit("hello")

        self.assertEqual(self.controller.modal, ModalKind.API_KEY)
        self.assertEqual(self.controller.pending_input, "hello")
        self.assertEqual(self.controller.phase, TurnPhase.AWAITING_CREDENTIAL)
        self.assertNotIn(("user", "hello"), self.transcript())
        self.assertFalse(await self.controller.submit("other"))

        self.script([_text("Welcome back")])
        await self.controller.submit_credential("sk-test")

        self.assertEqual(self.environ["OPENAI_API_KEY"], "sk-test")
        self.assertEqual(self.factory.cleared, 1)
        self.assertIsNone(self.controller.modal)
        self.assertIsNone(self.controller.pending_input)
        self.assertEqual(
            self.transcript(),
            [
                ("system", "API key saved to .env"),
                ("user", "hello"),
                ("assistant", "Welcome back"),
            ],
        )
        self.assertEqual(self.controller.phase, TurnPhase.IDLE)

    async def test_blank_key_cancels(self) -> None:
        self.script(CredentialMissingError("Missing API key for openai"))
        await self.controller.submit("hello")
        await self.controller.submit_credential("   ")
        self.assertIsNone(self.controller.modal)
        self.assertIsNone(self.controller.pending_input)
        self.assertEqual(self.controller.phase, TurnPhase.IDLE)
        self.assertEqual(self.llm.replies, [])


class AttachmentFlowTests(ControllerTestCase):
    async def test_folder_attachment_sets_working_directory(self) -> None:
        project = self.root / "project"
        project.mkdir()
        (project / "main.py").write_text("print(1)", encoding="utf-8")

        self.assertTrue(await self.controller.submit(str(project)))
        self.assertEqual(self.controller.working_directory, project)
        self.assertEqual(len(self.controller.attachments), 1)

        self.script([_call("list_directory", path=".")], [_text("One file.")])
        await self.controller.submit("what is in this project?")

        prompt = self.llm.requests[0][-1]["content"]
        self.assertIn(f"[IMPORTANT: Working directory is set to: {project}.", prompt)
        self.assertIn("[Attached files:\n- project (folder structure) (text)]", prompt)
        self.assertIn("main.py", self.controller.executed_tools[0].result or "")
        self.assertEqual(len(self.controller.attachments), 0)

    async def test_pasted_path_is_consumed(self) -> None:
        target = self.root / "notes.md"
        target.write_text("# n", encoding="utf-8")
        self.assertTrue(self.controller.on_input_changed(str(target), pasted=True))
        self.assertFalse(self.controller.on_input_changed("hello", pasted=True))
        self.assertEqual(len(self.controller.attachments), 1)

    async def test_attach_command_messages(self) -> None:
        target = self.root / "notes.md"
        target.write_text("# n", encoding="utf-8")
        await self.controller.submit("/attach")
        await self.controller.submit(f"/attach {self.root / 'missing.md'}")
        await self.controller.submit(f"/attach {target}")
        await self.controller.submit(f"/attach {target}")
        contents = [content for _, content in self.transcript()]
        self.assertEqual(contents[0], "Usage: /attach <path>")
        self.assertTrue(contents[1].startswith("File not found: "))
        self.assertEqual(contents[2], "Attached: [File] notes.md (3 B)")
        self.assertEqual(contents[3], "Already attached: notes.md")


class CommandTests(ControllerTestCase):
    async def test_model_picker_preselects_current(self) -> None:
        self.controller.model = "gpt-4o-mini"
        await self.controller.submit("/model")
        self.assertEqual(self.controller.modal, ModalKind.MODEL)
        self.assertEqual(self.controller.select_index, 1)
        self.assertEqual(self.controller.models[:2], ["gpt-4o", "gpt-4o-mini"])

    async def test_model_with_argument_switches_directly(self) -> None:
        await self.controller.submit("/model gpt-4o-mini")
        self.assertEqual(self.controller.model, "gpt-4o-mini")
        self.assertEqual(self.transcript()[-1], ("system", "Model: gpt-4o-mini"))

    async def test_provider_switch_resets_model(self) -> None:
        await self.controller.submit("/provider ollama")
        self.assertEqual(self.controller.provider, "ollama")
        self.assertEqual(self.controller.model, "llama3")

    async def test_unknown_command(self) -> None:
        await self.controller.submit("/zzz")
        self.assertEqual(self.transcript(), [("system", "Unknown: zzz")])

    async def test_help_lists_commands(self) -> None:
        await self.controller.submit("/help")
        content = self.transcript()[-1][1]
        self.assertTrue(content.startswith("/model /provider"))
        self.assertTrue(content.endswith("/exit"))

    async def test_clear_empties_transcript_and_persists(self) -> None:
        self.script([_text("Hi")])
        await self.controller.submit("hello")
        await self.controller.submit("/clear")
        self.assertEqual(self.controller.messages, [])
        self.assertEqual(self.controller.turn_count, 0)
        loaded = self.store.load(self.controller.session.id)
        self.assertEqual(loaded.messages, [])

    async def test_cd_and_pwd(self) -> None:
        await self.controller.submit(f"/cd {self.root}")
        self.assertEqual(self.controller.working_directory, self.root)
        await self.controller.submit("/cd not-a-dir")
        self.assertEqual(self.transcript()[-1], ("system", "Not a directory: not-a-dir"))
        await self.controller.submit("/pwd")
        self.assertEqual(self.transcript()[-1], ("system", f"Working directory: {self.root}"))

    async def test_tools_lists_file_tools(self) -> None:
        await self.controller.submit("/tools")
        content = self.transcript()[-1][1]
        self.assertTrue(content.startswith("Registered tools (8):"))
        self.assertIn("• read_file:", content)

    async def test_graph_status(self) -> None:
        await self.controller.submit("/status")
        content = self.transcript()[-1][1]
        self.assertIn("Graph Status: idle", content)
        self.assertIn("Nodes: 0", content)

    async def test_exit_requests_shutdown(self) -> None:
        await self.controller.submit("/quit")
        self.assertTrue(self.controller.exit_requested)

    async def test_alias_prefix_resolves_through_router(self) -> None:
        self.controller.on_input_changed("/sett")
        await self.controller.submit("/sett")
        self.assertEqual(self.controller.modal, ModalKind.SETTINGS)


class SessionTests(ControllerTestCase):
    async def test_new_session_gets_fresh_graph(self) -> None:
        self.script([_text("Hi")])
        await self.controller.submit("hello")
        first = self.controller.session

        await self.controller.submit("/new Research")

        session = self.controller.session
        self.assertNotEqual(session.id, first.id)
        self.assertEqual(session.name, "Research")
        self.assertEqual(self.transcript(), [("system", "New session: Research")])
        self.assertEqual(self.controller.graph.id, session.conversation_handle)
        self.assertEqual(self.controller.turn_count, 0)
        self.assertEqual(self.controller.agent.get_context(), [])

    async def test_select_session_restores_transcript_and_memory(self) -> None:
        self.script([_text("Hi")])
        await self.controller.submit("hello")
        first_id = self.controller.session.id
        await self.controller.new_session("Other")

        self.assertTrue(await self.controller.select_session(first_id))

        self.assertEqual(self.transcript(), [("user", "hello"), ("assistant", "Hi")])
        self.assertEqual(self.controller.turn_count, 1)
        self.assertEqual(self.store.current_session_id(), first_id)
        self.assertEqual(len(self.controller.agent.get_context()), 2)

    async def test_select_missing_session(self) -> None:
        self.assertFalse(await self.controller.select_session("session-gone"))
        self.assertEqual(self.transcript()[-1], ("system", "Session not found: session-gone"))

    async def test_open_sessions_preselects_current(self) -> None:
        current = self.controller.session.id
        await self.controller.new_session("Newer")
        await self.controller.select_session(current)
        summaries = await self.controller.open_sessions()
        self.assertEqual(self.controller.modal, ModalKind.SESSIONS)
        self.assertEqual(summaries[self.controller.select_index].id, current)

    async def test_delete_current_session_starts_new_one(self) -> None:
        doomed = self.controller.session.id
        self.assertTrue(await self.controller.delete_session(doomed))
        self.assertNotEqual(self.controller.session.id, doomed)
        self.assertEqual(self.store.current_session_id(), self.controller.session.id)

    async def test_rename_current_session(self) -> None:
        session_id = self.controller.session.id
        self.assertTrue(await self.controller.rename_session(session_id, "Renamed"))
        self.assertEqual(self.controller.session.name, "Renamed")


class RecoveryTests(ControllerTestCase):
    def _block_session_directory(self) -> None:
        blocker = self.root / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        self.store.directory = blocker / "sessions"

    async def test_unwritable_session_store_does_not_wedge_turns(self) -> None:
        self._block_session_directory()
        self.script([_text("still here")], [_text("and again")])

        self.assertTrue(await self.controller.submit("hello"))

        self.assertEqual(self.controller.phase, TurnPhase.IDLE)
        self.assertFalse(self.controller.busy)
        self.assertIn(("assistant", "still here"), self.transcript())
        self.assertTrue(any(content.startswith("Error: Unable to write") for _, content in self.transcript()))
        self.assertTrue(await self.controller.submit("next"))
        self.assertIn(("assistant", "and again"), self.transcript())

    async def test_unexpected_save_error_ends_turn_in_idle(self) -> None:
        with patch.object(self.store, "save", side_effect=PermissionError("denied")):
            self.assertTrue(await self.controller.submit("hello"))
        self.assertEqual(self.transcript(), [("user", "hello"), ("system", "Error: denied")])
        self.assertEqual(self.controller.phase, TurnPhase.IDLE)
        self.assertEqual(self.llm.requests, [])

    async def test_failed_command_becomes_notification(self) -> None:
        self._block_session_directory()
        await self.controller.submit("/new Blocked")
        role, content = self.transcript()[-1]
        self.assertEqual(role, "system")
        self.assertTrue(content.startswith("Error: Unable to write"))
        self.assertIsNone(self.controller.modal)
        self.assertEqual(self.controller.phase, TurnPhase.IDLE)

    async def test_unreadable_graph_is_replaced_on_session_switch(self) -> None:
        self.script([_text("first answer")])
        await self.controller.submit("hello")
        first_graph = self.controller.graph
        first_id = self.controller.session.id
        other = await self.controller.new_session("Other")
        graph_store = self.controller.runtime.graph_store
        record = json.loads(graph_store.path(other.conversation_handle).read_text(encoding="utf-8"))
        record["max_concurrency"] = "many"
        graph_store.path(other.conversation_handle).write_text(json.dumps(record), encoding="utf-8")
        await self.controller.select_session(first_id)

        self.assertTrue(await self.controller.select_session(other.id))

        graph = self.controller.graph
        self.assertIsNot(graph, first_graph)
        self.assertEqual(graph.id, other.conversation_handle)
        self.assertEqual(self.controller.agent.get_context(), [])

        self.script([_text("fresh answer")])
        await self.controller.submit("new question")
        first_record = json.loads(graph_store.path(first_graph.id).read_text(encoding="utf-8"))
        self.assertEqual(len(first_record["nodes"]), 1)
        other_record = json.loads(graph_store.path(other.conversation_handle).read_text(encoding="utf-8"))
        self.assertEqual(other_record["max_concurrency"], 1)
        self.assertEqual(len(other_record["nodes"]), 1)
        self.assertTrue(other_record["nodes"][0]["prompt"].endswith("new question"))

    async def test_model_switch_replaces_agent_and_keeps_memory(self) -> None:
        self.script([_text("Hi")])
        await self.controller.submit("hello")
        old_agent = self.controller.agent
        graph = self.controller.graph

        await self.controller.submit("/model gpt-4o-mini")
        self.script([_text("Switched")])
        await self.controller.submit("again")

        agent = self.controller.agent
        self.assertIsNot(agent, old_agent)
        self.assertEqual(agent.model, "gpt-4o-mini")
        self.assertIs(self.controller.graph, graph)
        self.assertIs(graph.agent, agent)
        request = [(m["role"], m.get("content")) for m in self.llm.requests[-1]]
        self.assertIn(("assistant", "Hi"), request)
        self.assertEqual([role for role, _ in request if role == "user"], ["user", "user"])
        self.assertEqual(len(agent.get_context()), 4)

    async def test_attached_paths_stay_out_of_history(self) -> None:
        target = self.root / "notes.md"
        target.write_text("# n", encoding="utf-8")
        await self.controller.submit(str(target))
        self.assertIsNone(self.controller.history.up(""))

        await self.controller.submit("/pwd")
        self.assertEqual(self.controller.history.up(""), "/pwd")


class PayloadTextTests(unittest.TestCase):
    def test_reads_response_or_content(self) -> None:
        self.assertEqual(payload_text({"response": "a"}), "a")
        self.assertEqual(payload_text('{"content": "b"}'), "b")
        self.assertEqual(payload_text("plain"), "plain")
        self.assertEqual(payload_text(None), "")
        self.assertEqual(payload_text({"response": "", "model": "m"}), "")

    def test_other_objects_are_rendered_as_json(self) -> None:
        self.assertEqual(payload_text({"result": 1}), '{\n  "result": 1\n}')
        self.assertEqual(payload_text('{"status": "ok"}'), '{\n  "status": "ok"\n}')


if __name__ == "__main__":
    unittest.main()
