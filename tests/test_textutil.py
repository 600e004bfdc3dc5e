"""Tests for textutil.py — trimming and splitting captured output."""

import pytest

from flow_exec.textutil import lines, split, split_on_any, tokens, trim


def test_trim_default_whitespace():
    assert trim("  \tvalue\r\n") == "value"


def test_trim_custom_chars():
    assert trim("--x--", "-") == "x"


def test_trim_all_whitespace():
    assert trim(" \n ") == ""


def test_split_trims_tokens():
    assert split("a , b,c ", ",") == ["a", "b", "c"]


def test_split_keeps_empty_tokens_by_default():
    assert split("a,,b", ",") == ["a", "", "b"]


def test_split_drops_empty_tokens():
    assert split("a,,b,", ",", include_empty=False) == ["a", "b"]


def test_split_multichar_separator():
    assert split("a::b::c", "::") == ["a", "b", "c"]


def test_split_max_splits():
    assert split("a b c d", " ", max_splits=2) == ["a", "b", "c d"]


def test_split_without_trimming():
    assert split(" a | b ", "|", trim_tokens=False) == [" a ", " b "]


def test_split_empty_separator():
    with pytest.raises(ValueError):
        split("abc", "")


def test_split_on_any():
    assert split_on_any("a,b;c", ",;") == ["a", "b", "c"]


def test_split_on_any_max_splits():
    assert split_on_any("a,b;c", ",;", max_splits=1) == ["a", "b;c"]


def test_lines_skips_blank_lines():
    assert lines("one\n\n  two  \r\n\n") == ["one", "two"]


def test_tokens_whitespace():
    assert tokens("  1   2\t3 ") == ["1", "2", "3"]


def test_tokens_with_separator():
    assert tokens("x, y,", ",") == ["x", "y"]
