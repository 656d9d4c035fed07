import unittest

import pytest

from friday_agent.tools.patching import (
    PatchError,
    apply_unified_diff,
    diff_line_counts,
    parse_unified_diff,
)

SIMPLE_DIFF = (
    "--- a/f.txt\n"
    "+++ b/f.txt\n"
    "@@ -1,3 +1,3 @@\n"
    " a\n"
    "-b\n"
    "+B\n"
    " c\n"
)


class TestParseUnifiedDiff(unittest.TestCase):
    def test_parses_paths_and_hunk(self):
        patch = parse_unified_diff(SIMPLE_DIFF)
        self.assertEqual(patch.old_path, "f.txt")
        self.assertEqual(patch.new_path, "f.txt")
        self.assertEqual(len(patch.hunks), 1)
        hunk = patch.hunks[0]
        self.assertEqual((hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count), (1, 3, 1, 3))
        self.assertEqual(hunk.old_lines, ["a", "b", "c"])
        self.assertEqual(hunk.new_lines, ["a", "B", "c"])

    def test_git_preamble_is_skipped(self):
        diff = "diff --git a/f.txt b/f.txt\nindex 123..456 100644\n" + SIMPLE_DIFF
        self.assertEqual(len(parse_unified_diff(diff).hunks), 1)

    def test_dev_null_marks_new_file(self):
        diff = "--- /dev/null\n+++ b/new.txt\n@@ -0,0 +1,1 @@\n+hi\n"
        self.assertTrue(parse_unified_diff(diff).creates_file)

    def test_rejects_diff_without_hunks(self):
        with pytest.raises(PatchError, match="no hunks"):
            parse_unified_diff("--- a/f.txt\n+++ b/f.txt\n")

    def test_rejects_garbage(self):
        with self.assertRaises(PatchError):
            parse_unified_diff("please change line two\n")

    def test_rejects_count_mismatch(self):
        diff = "--- a/f.txt\n+++ b/f.txt\n@@ -1,3 +1,3 @@\n a\n-b\n+B\n"
        with pytest.raises(PatchError, match="line counts"):
            parse_unified_diff(diff)

    def test_rejects_multi_file_diff(self):
        second = SIMPLE_DIFF.replace("f.txt", "g.txt")
        with pytest.raises(PatchError, match="multi-file"):
            parse_unified_diff(SIMPLE_DIFF + second)


class TestApplyUnifiedDiff(unittest.TestCase):
    def test_exact_match(self):
        self.assertEqual(apply_unified_diff("a\nb\nc\n", SIMPLE_DIFF), "a\nB\nc\n")

    def test_offset_tolerance(self):
        original = "x\ny\na\nb\nc\n"
        self.assertEqual(apply_unified_diff(original, SIMPLE_DIFF), "x\ny\na\nB\nc\n")

    def test_context_mismatch_raises(self):
        with pytest.raises(PatchError, match="does not match"):
            apply_unified_diff("a\nq\nc\n", SIMPLE_DIFF)

    def test_new_file_from_dev_null(self):
        diff = "--- /dev/null\n+++ b/new.txt\n@@ -0,0 +1,2 @@\n+hello\n+world\n"
        self.assertEqual(apply_unified_diff("", diff), "hello\nworld\n")

    def test_two_hunks(self):
        original = "".join(f"line{i}\n" for i in range(1, 11))
        diff = (
            "--- a/f.txt\n+++ b/f.txt\n"
            "@@ -2,1 +2,2 @@\n"
            "-line2\n"
            "+line2a\n"
            "+line2b\n"
            "@@ -9,1 +10,1 @@\n"
            "-line9\n"
            "+LINE9\n"
        )
        result = apply_unified_diff(original, diff).splitlines()
        self.assertEqual(result[1:3], ["line2a", "line2b"])
        self.assertEqual(result[9], "LINE9")
        self.assertEqual(len(result), 11)

    def test_missing_trailing_newline_is_kept(self):
        diff = (
            "--- a/f.txt\n+++ b/f.txt\n@@ -1,1 +1,1 @@\n"
            "-old\n"
            "\\ No newline at end of file\n"
            "+new\n"
            "\\ No newline at end of file\n"
        )
        self.assertEqual(apply_unified_diff("old", diff), "new")

    def test_crlf_line_endings_are_kept(self):
        self.assertEqual(apply_unified_diff("a\r\nb\r\nc\r\n", SIMPLE_DIFF), "a\r\nB\r\nc\r\n")

    def test_crlf_diff_against_lf_file_keeps_lf(self):
        self.assertEqual(apply_unified_diff("a\nb\nc\n", SIMPLE_DIFF.replace("\n", "\r\n")), "a\nB\nc\n")


class TestDiffLineCounts(unittest.TestCase):
    def test_counts_ignore_file_headers(self):
        self.assertEqual(diff_line_counts(SIMPLE_DIFF), (1, 1))
        self.assertEqual(diff_line_counts(""), (0, 0))
