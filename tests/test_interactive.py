import io
import tempfile
import unittest
from pathlib import Path

import pytest
from rich.console import Console

from friday_agent.agent.orchestrator import Orchestrator
from friday_agent.agent.prompts import PLAN_ONLY_INSTRUCTION
from friday_agent.config import ConfigurationError, CredentialStore
from friday_agent.domain.tasks import WriteMode
from friday_agent.interactive import (
    InteractiveSession,
    SessionMessage,
    SessionState,
    build_history_context,
    compose_task,
    ensure_primary_key,
    parse_builtin,
)
from friday_agent.presentation.console import ConsoleRenderer


class ScriptedModel:
    def __init__(self, *texts):
        self._texts = list(texts)
        self.calls = []

    async def generate_with_tools(self, messages, tools, system="", correlation_id=""):
        self.calls.append({"prompt": messages[0]["content"], "tools": [t["name"] for t in tools]})
        text = self._texts.pop(0)
        return {"content": [{"type": "text", "text": text}], "stop_reason": "end_turn", "usage": {}}

    async def version(self):
        return "anthropic/scripted"


def _no_context(task, cwd):
    return ""


def _inputs(*lines):
    queue = list(lines)

    def _input(prompt):
        if not queue:
            raise EOFError
        return queue.pop(0)

    return _input


class TestHistoryHelpers(unittest.TestCase):
    def test_parse_builtin(self):
        self.assertEqual(parse_builtin("!run npm test"), ("run", "npm test"))
        self.assertEqual(parse_builtin("!HELP"), ("help", ""))
        self.assertEqual(parse_builtin("!  status"), ("status", ""))
        self.assertIsNone(parse_builtin("fix the bug"))

    def test_history_window_and_truncation(self):
        messages = [SessionMessage(role="user", content=f"message {i}") for i in range(12)]
        messages.append(SessionMessage(role="assistant", content="x" * 600))
        context = build_history_context(messages)
        self.assertTrue(context.startswith("## Conversation History (this session only)"))
        self.assertNotIn("message 2", context)
        self.assertIn("message 3", context)
        self.assertIn("### Assistant:\n" + "x" * 500 + "... (truncated)", context)
        self.assertEqual(context.count("### "), 10)

    def test_empty_history(self):
        self.assertEqual(build_history_context([]), "")
        self.assertEqual(compose_task("", "do it"), "do it")

    def test_compose_task(self):
        prompt = compose_task("## Conversation History (this session only)", "next", plan_only=True)
        self.assertIn("\n\n## Current Task\nnext", prompt)
        self.assertTrue(prompt.endswith(PLAN_ONLY_INSTRUCTION))


class SessionTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.out = io.StringIO()
        self.renderer = ConsoleRenderer(Console(file=self.out, width=120))
        self.credentials = CredentialStore(environ={"ANTHROPIC_API_KEY": "k"})

    def tearDown(self):
        self._tmp.cleanup()

    def make(self, model, *inputs, workspace=None):
        state = SessionState(cwd=self.root, invocation_cwd=self.root, workspace=workspace)
        orchestrator = Orchestrator(self.credentials, model=model, preflight=_no_context)
        return InteractiveSession(
            state,
            self.credentials,
            renderer=self.renderer,
            orchestrator=orchestrator,
            input_func=_inputs(*inputs),
        )


class TestBuiltins(SessionTestCase):
    def test_exit_aliases(self):
        session = self.make(ScriptedModel())
        for line in ("!exit", "!quit", "!q"):
            self.assertFalse(session.handle_line(line))

    def test_write_modes_need_workspace(self):
        session = self.make(ScriptedModel())
        self.assertTrue(session.handle_line("!approve"))
        self.assertTrue(session.handle_line("!mode apply"))
        self.assertIs(session.state.write_mode, WriteMode.DRY_RUN)
        self.assertIn("Workspace is required. Run !workspace <path> first.", self.out.getvalue())

    def test_workspace_then_mode(self):
        (self.root / "site").mkdir()
        session = self.make(ScriptedModel())
        session.handle_line("!workspace site")
        self.assertEqual(session.state.workspace, self.root / "site")
        session.handle_line("!apply")
        self.assertIs(session.state.write_mode, WriteMode.APPLY)
        session.handle_line("!dry")
        self.assertIs(session.state.write_mode, WriteMode.DRY_RUN)
        self.assertIn("Mode changed to: dry-run", self.out.getvalue())

    def test_invalid_workspace_and_mode(self):
        session = self.make(ScriptedModel())
        session.handle_line("!workspace does-not-exist")
        session.handle_line("!mode yolo")
        self.assertIsNone(session.state.workspace)
        output = self.out.getvalue()
        self.assertIn("Directory does not exist", output)
        self.assertIn("Invalid mode: yolo. Use dry-run, approve, or apply.", output)

    def test_unknown_builtin(self):
        session = self.make(ScriptedModel())
        self.assertTrue(session.handle_line("!frobnicate"))
        self.assertIn("Unknown command: !frobnicate", self.out.getvalue())
        self.assertIn("Type !help for available commands", self.out.getvalue())

    def test_run_rejects_disallowed_command(self):
        session = self.make(ScriptedModel())
        session.handle_line("!run rm -rf .")
        self.assertIn("Command failed (exit code: 1)", self.out.getvalue())
        session.handle_line("!r")
        self.assertIn("Usage: !run <command>", self.out.getvalue())

    def test_status_and_help(self):
        session = self.make(ScriptedModel())
        session.handle_line("!s")
        session.handle_line("!?")
        output = self.out.getvalue()
        self.assertIn("(read-only)", output)
        self.assertIn("0m 0s", output)
        self.assertIn("Allowed commands for !run:", output)


class TestTasks(SessionTestCase):
    def test_second_task_carries_history(self):
        model = ScriptedModel("First answer.", "Second answer.")
        session = self.make(model)
        session.handle_line("what is in here?")
        session.handle_line("and now?")
        self.assertEqual(len(session.state.messages), 4)
        self.assertEqual(model.calls[0]["prompt"].split("\n\n")[0], "what is in here?")
        second = model.calls[1]["prompt"]
        self.assertIn("## Conversation History (this session only)", second)
        self.assertIn("### Assistant:\nFirst answer.", second)
        self.assertIn("## Current Task\nand now?", second)
        self.assertIn("Second answer.", self.out.getvalue())

    def test_clear_resets_history(self):
        session = self.make(ScriptedModel("ok"))
        session.handle_line("hello")
        session.handle_line("!c")
        self.assertEqual(session.state.messages, [])
        self.assertIn("Conversation history cleared.", self.out.getvalue())

    def test_plan_mode_forces_dry_run_then_switches_to_approve(self):
        model = ScriptedModel("1. Edit styles.css")
        session = self.make(model, "y", workspace=self.root)
        session.handle_line("!apply")
        session.handle_line("!plan")
        session.handle_line("restyle the page")

        self.assertNotIn("write_file", model.calls[0]["tools"])
        self.assertIn(PLAN_ONLY_INSTRUCTION, model.calls[0]["prompt"])
        self.assertFalse(session.state.plan_only)
        # Already in a write mode, so the mode is left alone.
        self.assertIs(session.state.write_mode, WriteMode.APPLY)
        self.assertIn("You can now ask Claude to implement the plan.", self.out.getvalue())

    def test_plan_confirmation_switches_dry_run_to_approve(self):
        session = self.make(ScriptedModel("plan"), "yes", workspace=self.root)
        session.handle_line("!plan")
        session.handle_line("restyle")
        self.assertIs(session.state.write_mode, WriteMode.APPROVE)

    def test_plan_declined_stays_in_dry_run(self):
        session = self.make(ScriptedModel("plan"), "", workspace=self.root)
        session.handle_line("!plan")
        session.handle_line("restyle")
        self.assertIs(session.state.write_mode, WriteMode.DRY_RUN)
        self.assertIn("Staying in dry-run mode", self.out.getvalue())

    def test_plan_confirmed_without_workspace(self):
        session = self.make(ScriptedModel("plan"), "y")
        session.handle_line("!plan")
        session.handle_line("restyle")
        self.assertIs(session.state.write_mode, WriteMode.DRY_RUN)
        self.assertIn("Cannot proceed: workspace is required.", self.out.getvalue())

    def test_run_loop_ends_on_eof(self):
        session = self.make(ScriptedModel("hi there"), "", "hello", "!status")
        self.assertEqual(session.run(), 0)
        output = self.out.getvalue()
        self.assertIn("F R I D A Y", output)
        self.assertIn("hi there", output)
        self.assertIn("Goodbye!", output)


class TestEnsurePrimaryKey(unittest.TestCase):
    def setUp(self):
        self.renderer = ConsoleRenderer(Console(file=io.StringIO()))

    def test_prompted_key_is_session_only(self):
        credentials = CredentialStore(environ={})
        ensure_primary_key(credentials, self.renderer, interactive=True, prompt_func=lambda prompt: " sk-typed ")
        self.assertEqual(credentials.get("anthropic"), "sk-typed")

    def test_non_interactive_fails_fast(self):
        with pytest.raises(ConfigurationError):
            ensure_primary_key(CredentialStore(environ={}), self.renderer, interactive=False)

    def test_blank_answer_fails(self):
        with pytest.raises(ConfigurationError):
            ensure_primary_key(CredentialStore(environ={}), self.renderer, interactive=True, prompt_func=lambda p: "")
