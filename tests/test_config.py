import tempfile
import unittest
from pathlib import Path

import pytest

from friday_agent.config import (
    ConfigurationError,
    CredentialStore,
    apply_env_defaults,
    build_task_invocation,
    check_invocation,
    load_env_file,
)
from friday_agent.domain.tasks import WriteMode


class TestEnvFile(unittest.TestCase):
    def test_load_env_file_parses_quotes_comments_and_export(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / ".env"
            path.write_text(
                "# comment\n"
                "ANTHROPIC_API_KEY=abc\n"
                "export OPENAI_API_KEY=\"quoted value\"\n"
                "GEMINI_MODEL='gemini-x'\n"
                "not a pair\n",
                encoding="utf-8",
            )
            data = load_env_file(path)
        self.assertEqual(
            data,
            {"ANTHROPIC_API_KEY": "abc", "OPENAI_API_KEY": "quoted value", "GEMINI_MODEL": "gemini-x"},
        )

    def test_missing_env_file_is_empty(self):
        self.assertEqual(load_env_file(Path("/nonexistent/friday/.env")), {})

    def test_apply_env_defaults_never_overrides(self):
        target = {"A": "kept", "B": ""}
        applied = apply_env_defaults({"A": "new", "B": "filled", "C": "added"}, target_env=target)
        self.assertEqual(applied, 2)
        self.assertEqual(target, {"A": "kept", "B": "filled", "C": "added"})


class TestCredentialStore(unittest.TestCase):
    def test_precedence_session_then_environment_then_file(self):
        store = CredentialStore(
            environ={"ANTHROPIC_API_KEY": "from-env"},
            env_file={"ANTHROPIC_API_KEY": "from-file", "OPENAI_API_KEY": "file-openai"},
        )
        self.assertEqual(store.get("anthropic"), "from-env")
        self.assertEqual(store.get("openai"), "file-openai")
        store.set_session("anthropic", "typed-in")
        self.assertEqual(store.get("anthropic"), "typed-in")
        store.set_session("anthropic", "")
        self.assertEqual(store.get("anthropic"), "from-env")

    def test_gemini_accepts_google_api_key(self):
        store = CredentialStore(environ={"GOOGLE_API_KEY": "g"})
        self.assertEqual(store.get("gemini"), "g")

    def test_missing_and_require(self):
        store = CredentialStore(environ={"OPENAI_API_KEY": "o"})
        self.assertEqual(store.missing(["anthropic", "openai", "gemini"]), ["anthropic", "gemini"])
        with pytest.raises(ConfigurationError, match="export ANTHROPIC_API_KEY"):
            store.require("anthropic")

    def test_unknown_provider(self):
        with self.assertRaises(KeyError):
            CredentialStore(environ={}).get("mistral")


class TestTaskInvocation(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_defaults(self):
        invocation = build_task_invocation(task="t", cwd=self.root)
        self.assertEqual(invocation.write_mode, WriteMode.DRY_RUN)
        self.assertEqual(invocation.advisors, ())
        self.assertEqual(invocation.max_tool_calls, 20)
        self.assertEqual(invocation.max_turns, 10)

    def test_advisors_are_normalized(self):
        invocation = build_task_invocation(task="t", cwd=self.root, advisors=" OpenAI, gemini,openai ")
        self.assertEqual(invocation.advisors, ("openai", "gemini"))

    def test_unknown_advisor(self):
        with pytest.raises(ConfigurationError, match="Unknown advisor: mistral"):
            build_task_invocation(task="t", cwd=self.root, advisors="mistral")

    def test_write_mode_requires_workspace(self):
        with pytest.raises(ConfigurationError, match="--workspace is required when using --apply"):
            build_task_invocation(task="t", cwd=self.root, write_mode=WriteMode.APPLY)

    def test_budgets_must_be_positive(self):
        with self.assertRaises(ConfigurationError):
            build_task_invocation(task="t", cwd=self.root, max_tool_calls=0)

    def test_invocation_is_immutable(self):
        invocation = build_task_invocation(task="t", cwd=self.root)
        with self.assertRaises(Exception):
            invocation.task = "changed"
        self.assertEqual(invocation.for_task("other").task, "other")

    def test_check_invocation_rejects_missing_workspace_dir(self):
        invocation = build_task_invocation(
            task="t", cwd=self.root, workspace=self.root / "nope", write_mode=WriteMode.APPROVE
        )
        credentials = CredentialStore(environ={"ANTHROPIC_API_KEY": "k"})
        with pytest.raises(ConfigurationError, match="Invalid --workspace"):
            check_invocation(invocation, credentials)

    def test_check_invocation_requires_primary_key(self):
        invocation = build_task_invocation(task="t", cwd=self.root)
        with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY is required"):
            check_invocation(invocation, CredentialStore(environ={}))
