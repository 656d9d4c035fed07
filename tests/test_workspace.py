import os
import tempfile
import unittest
from pathlib import Path

import pytest

from friday_agent.workspace import (
    SandboxViolation,
    is_within_workspace,
    resolve,
    resolve_workspace,
    validate_workspace_dir,
)


class TestResolve(unittest.TestCase):
    def setUp(self):
        self.root = os.path.abspath(os.path.join(os.sep, "tmp", "ws"))

    def test_relative_path_stays_inside(self):
        resolved = resolve("src/app.py", self.root)
        self.assertEqual(resolved, Path(self.root) / "src" / "app.py")

    def test_dot_segments_are_normalized(self):
        resolved = resolve("src/../lib/./util.py", self.root)
        self.assertEqual(resolved, Path(self.root) / "lib" / "util.py")

    def test_root_itself_is_inside(self):
        self.assertEqual(resolve(".", self.root), Path(self.root))

    def test_parent_escape_is_rejected(self):
        with pytest.raises(SandboxViolation) as info:
            resolve("../outside.txt", self.root)
        self.assertIn("Attempted write outside workspace", str(info.value))
        self.assertEqual(info.value.workspace_root, self.root)

    def test_deep_escape_is_rejected(self):
        with self.assertRaises(SandboxViolation):
            resolve("a/b/../../../etc/passwd", self.root)

    def test_absolute_path_outside_is_rejected(self):
        with self.assertRaises(SandboxViolation):
            resolve(os.path.join(os.sep, "etc", "passwd"), self.root)

    def test_absolute_path_inside_is_accepted(self):
        inside = os.path.join(self.root, "notes.md")
        self.assertEqual(resolve(inside, self.root), Path(inside))

    def test_sibling_with_common_prefix_is_rejected(self):
        sibling = self.root + "-other"
        self.assertFalse(is_within_workspace(os.path.join(sibling, "x.txt"), self.root))

    def test_sandbox_violation_is_a_value_error(self):
        self.assertTrue(issubclass(SandboxViolation, ValueError))


class TestWorkspaceDirectory(unittest.TestCase):
    def test_resolve_workspace_relative_to_launch_dir(self):
        base = os.path.abspath(os.path.join(os.sep, "home", "dev"))
        self.assertEqual(resolve_workspace("proj", base), Path(base) / "proj")
        self.assertEqual(resolve_workspace("../other", base), Path(os.path.dirname(base)) / "other")

    def test_resolve_workspace_keeps_absolute(self):
        absolute = os.path.abspath(os.path.join(os.sep, "srv", "site"))
        self.assertEqual(resolve_workspace(absolute, "/ignored"), Path(absolute))

    def test_validate_workspace_dir(self):
        with tempfile.TemporaryDirectory() as tmp:
            ok, error = validate_workspace_dir(tmp)
            self.assertTrue(ok)
            self.assertEqual(error, "")

            missing = Path(tmp) / "missing"
            ok, error = validate_workspace_dir(missing)
            self.assertFalse(ok)
            self.assertIn("does not exist", error)

            a_file = Path(tmp) / "file.txt"
            a_file.write_text("x", encoding="utf-8")
            ok, error = validate_workspace_dir(a_file)
            self.assertFalse(ok)
            self.assertIn("not a directory", error)
