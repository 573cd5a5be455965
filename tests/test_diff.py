"""Tests for textual diff helpers."""

from __future__ import annotations

from solspace.operations.diff import file_diff, tree_diff, unified_text_diff


class TestUnifiedTextDiff:

    def test_identical_is_empty(self) -> None:
        assert unified_text_diff("a\nb\n", "a\nb\n") == ""

    def test_changed_line(self) -> None:
        out = unified_text_diff("a\nb\n", "a\nc\n", "old.txt", "new.txt")
        assert out.startswith("--- old.txt\n+++ new.txt\n")
        assert "-b\n" in out
        assert "+c\n" in out

    def test_missing_trailing_newline_marked(self) -> None:
        out = unified_text_diff("a\n", "a\nb")
        assert "+b\n\\ No newline at end of file\n" in out


class TestFileDiff:

    def test_unchanged(self) -> None:
        assert file_diff("a.py", b"x\n", b"x\n") == ""

    def test_added(self) -> None:
        out = file_diff("a.py", None, b"x = 1\n")
        assert out.startswith("diff --git a/a.py b/a.py\nnew file\n")
        assert "--- /dev/null\n+++ b/a.py\n" in out
        assert "+x = 1\n" in out

    def test_deleted(self) -> None:
        out = file_diff("a.py", b"x = 1\n", None)
        assert "deleted file\n" in out
        assert "--- a/a.py\n+++ /dev/null\n" in out
        assert "-x = 1\n" in out

    def test_binary(self) -> None:
        out = file_diff("img.bin", b"\x00\x01", b"\x00\x02")
        assert "Binary files a/img.bin and b/img.bin differ" in out


class TestTreeDiff:

    def test_sorted_paths(self) -> None:
        out = tree_diff({"b.py": b"1\n", "a.py": b"1\n"}, {"b.py": b"2\n", "a.py": b"2\n"})
        assert out.index("a/a.py") < out.index("a/b.py")

    def test_only_changed_paths(self) -> None:
        out = tree_diff({"same.py": b"s\n", "x.py": b"1\n"}, {"same.py": b"s\n", "x.py": b"2\n"})
        assert "same.py" not in out
        assert "x.py" in out

    def test_empty_trees(self) -> None:
        assert tree_diff({}, {}) == ""
