import json
import shutil
import subprocess
import tempfile
import unittest
from pathlib import Path

from friday_agent.domain.tasks import WriteMode
from friday_agent.tools.base import (
    ToolContext,
    ToolKind,
    ToolRequest,
    advisor_from_tool_name,
    build_tool_catalog,
)
from friday_agent.tools.files import ReadFileTool, missing_file_message
from friday_agent.tools.git import NO_CHANGES_MESSAGE, NOT_A_REPO_MESSAGE, git_diff
from friday_agent.tools.search import RepoSearchTool, repo_search
from friday_agent.tools.shell import RunCommandTool, is_command_allowed, run_command


# ---------------------------------------------------------------------------
# Catalog gating
# ---------------------------------------------------------------------------


class TestToolCatalog(unittest.TestCase):
    def _names(self, mode, advisors=()):
        return [schema["name"] for schema in build_tool_catalog(mode, advisors)]

    def test_dry_run_has_no_write_tools(self):
        names = self._names(WriteMode.DRY_RUN)
        self.assertEqual(names, ["repo_search", "read_file", "git_diff", "run_command"])

    def test_write_modes_add_write_tools(self):
        for mode in (WriteMode.APPROVE, WriteMode.APPLY):
            names = self._names(mode)
            self.assertIn("write_file", names)
            self.assertIn("apply_patch", names)

    def test_advisor_tools_follow_enabled_advisors(self):
        names = self._names(WriteMode.DRY_RUN, ("gemini",))
        self.assertIn("ask_gemini", names)
        self.assertNotIn("ask_openai", names)

    def test_schemas_are_anthropic_shaped(self):
        for schema in build_tool_catalog(WriteMode.APPLY, ("openai", "gemini")):
            self.assertIn("description", schema)
            self.assertEqual(schema["input_schema"]["type"], "object")
            self.assertIn("required", schema["input_schema"])

    def test_apply_patch_requires_unified_diff(self):
        schema = {s["name"]: s for s in build_tool_catalog(WriteMode.APPLY)}["apply_patch"]
        self.assertEqual(sorted(schema["input_schema"]["required"]), ["path", "unifiedDiff"])


class TestToolKind(unittest.TestCase):
    def test_known_names(self):
        self.assertIs(ToolKind.from_tool_name("read_file"), ToolKind.READ_FILE)
        self.assertIs(ToolKind.from_tool_name("apply_patch"), ToolKind.APPLY_PATCH)
        self.assertTrue(ToolKind.WRITE_FILE.is_write)
        self.assertFalse(ToolKind.RUN_COMMAND.is_write)

    def test_advisor_prefix(self):
        self.assertIs(ToolKind.from_tool_name("ask_openai"), ToolKind.ASK_ADVISOR)
        self.assertEqual(advisor_from_tool_name("ask_openai"), "openai")

    def test_unknown_names(self):
        self.assertIsNone(ToolKind.from_tool_name("delete_everything"))
        self.assertIsNone(ToolKind.from_tool_name("ask_"))


# ---------------------------------------------------------------------------
# Command allow-list
# ---------------------------------------------------------------------------


class TestCommandAllowList(unittest.TestCase):
    def test_exact_commands(self):
        for cmd in ("npm test", "git status", "ls", "yarn lint"):
            self.assertTrue(is_command_allowed(cmd), cmd)

    def test_prefix_with_arguments(self):
        self.assertTrue(is_command_allowed("git log --oneline -5"))
        self.assertTrue(is_command_allowed("npm run build:prod"))
        self.assertTrue(is_command_allowed("cat README.md"))

    def test_whitespace_and_case_are_normalized(self):
        self.assertTrue(is_command_allowed("  GIT   status "))

    def test_prefix_must_end_at_word_boundary(self):
        self.assertFalse(is_command_allowed("lsblk"))
        self.assertFalse(is_command_allowed("catalog"))

    def test_not_allowed(self):
        for cmd in ("rm -rf /", "python setup.py", "curl http://example.com", ""):
            self.assertFalse(is_command_allowed(cmd), cmd)

    def test_shell_operators_are_rejected(self):
        for cmd in ("ls; rm -rf /", "git status && rm x", "cat a | sh", "ls > out", "cat $(whoami)", "ls `id`"):
            self.assertFalse(is_command_allowed(cmd), cmd)

    def test_git_options_that_write_files_are_rejected(self):
        for cmd in (
            "git diff --output=/tmp/x",
            "git diff --output /tmp/x",
            "git diff --outp=/tmp/x",
            "git log -o x",
            "git log -ox",
            "git log --output-directory=out",
            "git diff --ext-diff",
            "git log -p --textconv",
        ):
            self.assertFalse(is_command_allowed(cmd), cmd)

    def test_git_read_only_options_stay_allowed(self):
        for cmd in ("git diff --text", "git log --oneline -5", "git log -Sfoo", "git diff -- --output"):
            self.assertTrue(is_command_allowed(cmd), cmd)

    def test_git_output_option_writes_nothing(self):
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "leak.txt"
            result = RunCommandTool().run(
                ToolRequest("run_command", {"cmd": f"git diff --output={target}"}),
                ToolContext(cwd=Path(tmp)),
            )
            self.assertFalse(result.ok)
            self.assertIn("Command not allowed", result.output)
            self.assertFalse(target.exists())

    def test_rejected_command_is_not_executed(self):
        with tempfile.TemporaryDirectory() as tmp:
            outcome = run_command("touch created.txt", Path(tmp))
            self.assertEqual(outcome["exitCode"], 1)
            self.assertIn("Command not allowed", outcome["stderr"])
            self.assertFalse((Path(tmp) / "created.txt").exists())

    def test_tool_reports_rejection_as_error(self):
        with tempfile.TemporaryDirectory() as tmp:
            result = RunCommandTool().run(ToolRequest("run_command", {"cmd": "rm -rf ."}), ToolContext(cwd=Path(tmp)))
            self.assertFalse(result.ok)
            self.assertIn("Allowed commands:", result.output)

    @unittest.skipIf(shutil.which("ls") is None, "ls not available")
    def test_tool_runs_allowed_command(self):
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "visible.txt").write_text("x", encoding="utf-8")
            result = RunCommandTool().run(ToolRequest("run_command", {"cmd": "ls"}), ToolContext(cwd=Path(tmp)))
            self.assertTrue(result.ok)
            payload = json.loads(result.output)
            self.assertEqual(payload["exitCode"], 0)
            self.assertIn("visible.txt", payload["stdout"])


# ---------------------------------------------------------------------------
# Search and read
# ---------------------------------------------------------------------------


class TestRepoSearch(unittest.TestCase):
    def test_case_insensitive_match_with_relative_paths(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "src").mkdir()
            (root / "src" / "app.py").write_text("import os\nclass TodoList:\n    pass\n", encoding="utf-8")
            (root / "notes.md").write_text("the todolist needs work\n", encoding="utf-8")
            matches = repo_search("TodoList", root)
            self.assertEqual([(m.file, m.line) for m in matches], [("notes.md", 1), ("src/app.py", 2)])
            self.assertEqual(matches[1].preview, "class TodoList:")

    def test_skips_vendor_dirs_and_binary_extensions(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "node_modules").mkdir()
            (root / "node_modules" / "dep.js").write_text("needle\n", encoding="utf-8")
            (root / "image.png").write_text("needle\n", encoding="utf-8")
            (root / "ok.txt").write_text("needle\n", encoding="utf-8")
            self.assertEqual([m.file for m in repo_search("needle", root)], ["ok.txt"])

    def test_max_results(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "many.txt").write_text("hit\n" * 20, encoding="utf-8")
            self.assertEqual(len(repo_search("hit", root, max_results=5)), 5)

    def test_tool_output_is_json(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "a.py").write_text("value = 1\n", encoding="utf-8")
            result = RepoSearchTool().run(ToolRequest("repo_search", {"query": "value"}), ToolContext(cwd=root))
            self.assertTrue(result.ok)
            self.assertEqual(json.loads(result.output)["matches"][0]["file"], "a.py")


class TestReadFile(unittest.TestCase):
    def test_reads_file_inside_cwd(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "hello.txt").write_text("hello\n", encoding="utf-8")
            result = ReadFileTool().run(ToolRequest("read_file", {"path": "hello.txt"}), ToolContext(cwd=root))
            self.assertTrue(result.ok)
            self.assertEqual(result.output, "hello\n")

    def test_missing_file_is_a_hint_not_an_error(self):
        with tempfile.TemporaryDirectory() as tmp:
            result = ReadFileTool().run(ToolRequest("read_file", {"path": "styles.css"}), ToolContext(cwd=Path(tmp)))
            self.assertTrue(result.ok)
            self.assertEqual(result.output, missing_file_message("styles.css"))
            self.assertIn("write_file", result.output)

    def test_escape_is_denied(self):
        with tempfile.TemporaryDirectory() as tmp:
            result = ReadFileTool().run(ToolRequest("read_file", {"path": "../secret"}), ToolContext(cwd=Path(tmp)))
            self.assertFalse(result.ok)
            self.assertIn("Access denied", result.output)


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------


@unittest.skipIf(shutil.which("git") is None, "git not available")
class TestGitDiff(unittest.TestCase):
    def _git(self, cwd, *args):
        subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True)

    def _init_repo(self, root: Path) -> None:
        self._git(root, "init", "-q")
        self._git(root, "config", "user.email", "dev@example.com")
        self._git(root, "config", "user.name", "Dev")
        (root / "a.txt").write_text("one\n", encoding="utf-8")
        self._git(root, "add", "a.txt")
        self._git(root, "commit", "-q", "-m", "init")

    def test_not_a_repository(self):
        with tempfile.TemporaryDirectory() as tmp:
            result = git_diff(Path(tmp))
            # The temp dir may live under an enclosing repository on some machines.
            if result.diff != NOT_A_REPO_MESSAGE:
                self.skipTest("temporary directory is inside a git repository")
            self.assertTrue(result.ok)
            self.assertFalse(result.has_changes)

    def test_clean_repository(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            self._init_repo(root)
            result = git_diff(root)
            self.assertEqual(result.diff, NO_CHANGES_MESSAGE)
            self.assertFalse(result.has_changes)

    def test_staged_and_unstaged_sections(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            self._init_repo(root)
            (root / "a.txt").write_text("two\n", encoding="utf-8")
            self._git(root, "add", "a.txt")
            (root / "a.txt").write_text("three\n", encoding="utf-8")
            result = git_diff(root)
            self.assertTrue(result.has_changes)
            self.assertIn("=== Staged Changes ===", result.diff)
            self.assertIn("=== Unstaged Changes ===", result.diff)
            self.assertIn("+three", result.diff)
