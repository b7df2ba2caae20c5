#!/usr/bin/env python3
"""
Tests for parsing rule lines into patterns
"""

import pytest

from ignore_engine.errors import PatternSyntaxError
from ignore_engine.pattern import (
    GLOBSTAR, CharClass, Literal, Star, parse_line, parse_lines,
)


@pytest.mark.parametrize("line", ["", "   ", "\t", "# a comment", "#*.log", "\n", "\r\n"])
def test_blank_and_comment_lines_produce_nothing(line):
    assert parse_line(line) is None


def test_plain_pattern():
    pattern = parse_line("*.log", source_file=".gitignore", line_number=3)

    assert pattern.raw == "*.log"
    assert not pattern.negated
    assert not pattern.anchored_at_root
    assert not pattern.directory_only
    assert pattern.source_file == ".gitignore"
    assert pattern.line_number == 3
    assert len(pattern.segments) == 1
    assert pattern.segments[0].tokens == (Star(), Literal(".log"))


def test_negation():
    pattern = parse_line("!keep.log")
    assert pattern.negated
    assert pattern.body == "keep.log"


def test_escaped_hash_and_bang_are_literal():
    hashed = parse_line("\\#notes")
    assert hashed is not None
    assert hashed.matches("#notes")

    banged = parse_line("\\!important")
    assert not banged.negated
    assert banged.matches("!important")


def test_trailing_slash_is_directory_only():
    pattern = parse_line("build/")
    assert pattern.directory_only
    assert not pattern.anchored_at_root
    assert pattern.body == "build"


def test_leading_slash_anchors():
    pattern = parse_line("/build")
    assert pattern.anchored_at_root
    assert pattern.body == "build"


def test_middle_slash_anchors():
    assert parse_line("doc/frotz").anchored_at_root
    assert parse_line("doc/frotz/").anchored_at_root


def test_trailing_whitespace_is_stripped_unless_escaped():
    plain = parse_line("foo   ")
    assert plain.body == "foo"

    escaped = parse_line("foo\\ ")
    assert escaped.matches("foo ")
    assert not escaped.matches("foo")


def test_line_endings_are_tolerated():
    assert parse_line("*.tmp\r\n").raw == "*.tmp"


def test_bom_is_dropped_on_first_line():
    pattern = parse_line("\ufeffbuild/", line_number=1)
    assert pattern.raw == "build/"
    assert pattern.matches("build", is_directory=True)


def test_consecutive_globstars_collapse():
    pattern = parse_line("a/**/**/b")
    assert [s.text for s in pattern.segments] == ["a", GLOBSTAR, "b"]


def test_leading_globstar():
    pattern = parse_line("**/foo")
    assert pattern.segments[0].is_globstar
    assert pattern.anchored_at_root


def test_star_runs_inside_a_segment_collapse():
    pattern = parse_line("a***b")
    assert pattern.segments[0].tokens == (Literal("a"), Star(), Literal("b"))


def test_character_class():
    pattern = parse_line("[!a-c]x")
    char_class = pattern.segments[0].tokens[0]
    assert isinstance(char_class, CharClass)
    assert char_class.negated
    assert char_class.ranges == (("a", "c"),)


def test_named_character_class():
    pattern = parse_line("file[[:digit:]]")
    assert pattern.matches("file7")
    assert not pattern.matches("filex")


def test_closing_bracket_first_in_class_is_literal():
    pattern = parse_line("[]a]")
    assert pattern.matches("]")
    assert pattern.matches("a")
    assert not pattern.matches("b")


@pytest.mark.parametrize("line,message", [
    ("foo\\", "trailing backslash"),
    ("[abc", "unterminated character class"),
    ("src/[a-", "unterminated character class"),
    ("[z-a]", "invalid character range"),
    ("[[:nope:]]", "unknown character class"),
])
def test_malformed_lines_raise(line, message):
    with pytest.raises(PatternSyntaxError) as exc_info:
        parse_line(line, source_file="rules", line_number=7)

    error = exc_info.value
    assert message in error.message
    assert error.source_file == "rules"
    assert error.line_number == 7
    assert error.pattern == line
    assert str(error).startswith("rules:7:")


@pytest.mark.parametrize("line", ["/", "!", "//", "!/"])
def test_lines_without_segments_produce_nothing(line):
    assert parse_line(line) is None


def test_parse_lines_collects_errors_and_keeps_going():
    patterns, errors = parse_lines("*.log\n[broken\n# comment\n\nbuild/\n", "sub/.gitignore")

    assert [p.raw for p in patterns] == ["*.log", "build/"]
    assert [p.line_number for p in patterns] == [1, 5]
    assert len(errors) == 1
    assert errors[0].line_number == 2
    assert errors[0].source_file == "sub/.gitignore"


def test_parse_lines_accepts_iterables():
    patterns, errors = parse_lines(["a", "!b"])
    assert [p.negated for p in patterns] == [False, True]
    assert errors == []
