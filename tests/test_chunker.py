"""Tests for boundary-aware segment splitting."""

import pytest

from shellsage.chunker import (
    BOUNDARY_SEARCH_LINES,
    MAX_SEGMENT_LINES,
    Segment,
    split_segments,
)


def _numbered(n, prefix="x = "):
    return [f"{prefix}{i}" for i in range(1, n + 1)]


def _assert_partition(segments, lines):
    """Segments are contiguous, ordered and rebuild the input exactly."""
    assert segments[0].start_line == 1
    assert segments[-1].end_line == len(lines)
    for prev, cur in zip(segments, segments[1:]):
        assert cur.start_line == prev.end_line + 1
    rebuilt = []
    for seg in segments:
        rebuilt.extend(seg.content.split("\n"))
    assert rebuilt == lines


class TestEmptyAndSmallInput:

    def test_empty_input_has_no_segments(self):
        assert split_segments("") == []

    @pytest.mark.parametrize("text, total", [("\n", 1), ("   \n\t\n  ", 3), ("\n\n\n", 3)])
    def test_blank_lines_are_one_segment(self, text, total):
        segments = split_segments(text)
        assert [(s.start_line, s.end_line, s.context_prefix) for s in segments] == [(1, total, "")]

    def test_single_line(self):
        segments = split_segments("echo hi")
        assert segments == [Segment(start_line=1, end_line=1, content="echo hi")]

    def test_exactly_at_cap_is_one_segment(self):
        lines = _numbered(MAX_SEGMENT_LINES)
        segments = split_segments("\n".join(lines))
        assert len(segments) == 1
        assert segments[0].end_line == MAX_SEGMENT_LINES
        assert segments[0].context_prefix == ""

    def test_invalid_max_lines(self):
        with pytest.raises(ValueError):
            split_segments("a\nb", max_lines=0)


class TestBoundaries:

    def test_no_boundary_cuts_at_cap(self):
        lines = _numbered(450)
        segments = split_segments("\n".join(lines))
        assert [(s.start_line, s.end_line) for s in segments] == [(1, 200), (201, 400), (401, 450)]
        _assert_partition(segments, lines)

    def test_prefers_blank_line(self):
        lines = _numbered(300)
        lines[184] = ""  # line 185
        lines[194] = "}"  # line 195: closing line is later but lower priority
        segments = split_segments("\n".join(lines))
        assert segments[0].end_line == 185
        assert segments[1].start_line == 186
        _assert_partition(segments, lines)

    def test_closing_line_when_no_blank(self):
        lines = _numbered(300)
        lines[189] = "}"  # line 190
        segments = split_segments("\n".join(lines))
        assert segments[0].end_line == 190
        _assert_partition(segments, lines)

    def test_declaration_starts_next_segment(self):
        lines = _numbered(300, prefix="    y = ")
        lines[179] = "def handler():"  # line 180
        segments = split_segments("\n".join(lines))
        assert segments[0].end_line == 179
        assert segments[1].content.startswith("def handler():")
        _assert_partition(segments, lines)

    def test_indented_declaration_is_ignored(self):
        lines = _numbered(300, prefix="    y = ")
        lines[179] = "    def nested():"
        segments = split_segments("\n".join(lines))
        assert segments[0].end_line == MAX_SEGMENT_LINES

    def test_boundary_outside_search_window_is_ignored(self):
        lines = _numbered(300)
        lines[MAX_SEGMENT_LINES - BOUNDARY_SEARCH_LINES - 10] = ""
        segments = split_segments("\n".join(lines))
        assert segments[0].end_line == MAX_SEGMENT_LINES

    def test_every_segment_within_cap(self):
        lines = []
        for block in range(40):
            lines.append(f"fn f{block}() {{")
            lines.extend(f"    let v = {i};" for i in range(22))
            lines.append("}")
            lines.append("")
        segments = split_segments("\n".join(lines))
        assert len(segments) > 1
        assert all(s.line_count <= MAX_SEGMENT_LINES for s in segments)
        _assert_partition(segments, lines)

    def test_deterministic(self):
        text = "\n".join(_numbered(777))
        assert split_segments(text) == split_segments(text)


class TestContextPrefix:

    def test_first_segment_has_no_prefix(self):
        segments = split_segments("\n".join(_numbered(420)))
        assert segments[0].context_prefix == ""

    def test_later_segments_repeat_previous_lines(self):
        lines = _numbered(420)
        segments = split_segments("\n".join(lines), overlap=5)
        second = segments[1]
        assert second.context_prefix.startswith("[Context: lines 196-200")
        assert second.context_prefix.endswith("[End of context]")
        for line in lines[195:200]:
            assert line in second.context_prefix
        assert "x = 196" not in second.content

    def test_overlap_zero_disables_prefix(self):
        segments = split_segments("\n".join(_numbered(420)), overlap=0)
        assert all(s.context_prefix == "" for s in segments)
