"""Tests for the explain pipeline: segment calls, synthesis and failure reporting."""

import pytest

from shellsage import prompts
from shellsage.errors import BackendError, ConfigurationError, PipelineError
from shellsage.explain import ExplainPipeline, PipelineStage


def _big_input(n_lines=450):
    return "\n".join(f"x = {i}" for i in range(1, n_lines + 1))


def _explain(backend, text, **kwargs):
    return ExplainPipeline(backend, **kwargs).run(text)


SYNTHESIS_REPLY = "## Summary\nWhole picture.\n## Follow-up Questions\n1. A?\n2. B?"


class TestEmptyInput:

    def test_no_backend_calls(self, make_backend):
        backend = make_backend()
        result = _explain(backend, "")
        assert result.is_empty
        assert result.total_lines == 0
        assert result.segment_results == []
        assert result.summary == ""
        assert result.followup_questions == []
        assert backend.calls == [] and backend.stream_calls == []

    def test_whitespace_lines_form_one_segment(self, make_backend):
        backend = make_backend(replies=["Only blank lines.", "1. Why?"])
        result = _explain(backend, "   \n\t\n  ")
        assert result.total_segments == 1
        assert result.total_lines == 3
        assert result.segment_results[0].start_line == 1
        assert result.segment_results[0].end_line == 3
        assert len(backend.calls) == 2


class TestSingleSegment:

    def test_segment_text_becomes_summary(self, make_backend):
        backend = make_backend(replies=["Explains the script.", "1. Why bash?\n2. Why set -e?"])
        result = _explain(backend, "#!/bin/sh\nset -e\necho hi\n")

        assert result.total_segments == 1
        assert result.total_lines == 3
        assert result.summary == "Explains the script."
        assert result.followup_questions == ["Why bash?", "Why set -e?"]
        assert len(backend.calls) == 2
        assert backend.calls[0]["system"] == prompts.SINGLE_SEGMENT_PROMPT
        assert backend.calls[1]["system"] == prompts.FOLLOWUP_PROMPT
        assert backend.calls[1]["user"] == "Explains the script."
        assert backend.calls[1]["max_tokens"] == 512

    def test_followups_may_be_empty(self, make_backend):
        backend = make_backend(replies=["Explanation.", "No numbered list here."])
        result = _explain(backend, "echo hi")
        assert result.followup_questions == []


class TestMultiSegment:

    def test_one_call_per_segment_then_synthesis(self, make_backend):
        backend = make_backend(replies=["part one", "part two", "part three", SYNTHESIS_REPLY])
        result = _explain(backend, _big_input())

        assert result.total_segments == 3
        assert result.total_lines == 450
        assert [r.explanation for r in result.segment_results] == ["part one", "part two", "part three"]
        assert [(r.start_line, r.end_line) for r in result.segment_results] == [
            (1, 200), (201, 400), (401, 450),
        ]
        assert result.summary == "Whole picture."
        assert result.followup_questions == ["A?", "B?"]
        assert len(backend.calls) == 4

    def test_segment_prompts_carry_position_and_context(self, make_backend):
        backend = make_backend(replies=["a", "b", "c", SYNTHESIS_REPLY])
        _explain(backend, _big_input())

        assert "part 2 of 3" in backend.calls[1]["system"]
        assert backend.calls[0]["user"].startswith("Lines 1-200:")
        assert backend.calls[1]["user"].startswith("[Context: lines 196-200")
        assert "Lines 201-400:" in backend.calls[1]["user"]

    def test_synthesis_sees_every_segment_in_order(self, make_backend):
        backend = make_backend(replies=["first text", "second text", "third text", SYNTHESIS_REPLY])
        _explain(backend, _big_input(), synthesis_max_tokens=999)

        synthesis = backend.calls[-1]
        assert synthesis["system"] == prompts.SYNTHESIS_PROMPT
        assert synthesis["max_tokens"] == 999
        body = synthesis["user"]
        assert "450 total lines" in body
        assert body.index("### Lines 1-200\nfirst text") < body.index("### Lines 201-400\nsecond text")
        assert body.index("second text") < body.index("### Lines 401-450\nthird text")

    def test_malformed_synthesis_used_verbatim(self, make_backend):
        backend = make_backend(replies=["a", "b", "c", "free-form overview"])
        result = _explain(backend, _big_input())
        assert result.summary == "free-form overview"
        assert result.followup_questions == []


class TestStreaming:

    def test_segments_streamed_synthesis_blocking(self, make_backend):
        backend = make_backend(
            stream_replies=[["seg", "ment 1"], ["seg", "ment 2"], ["seg", "ment 3"]],
            replies=[SYNTHESIS_REPLY],
        )
        seen = []
        result = ExplainPipeline(
            backend, stream=True, on_token=lambda i, t: seen.append((i, t)),
        ).run(_big_input())

        assert seen == [
            (1, "seg"), (1, "ment 1"), (2, "seg"), (2, "ment 2"), (3, "seg"), (3, "ment 3"),
        ]
        assert [r.explanation for r in result.segment_results] == ["segment 1", "segment 2", "segment 3"]
        assert len(backend.stream_calls) == 3
        assert len(backend.calls) == 1

    def test_stream_without_callback_is_blocking(self, make_backend):
        backend = make_backend(replies=["text", "1. q"])
        ExplainPipeline(backend, stream=True).run("echo hi")
        assert backend.stream_calls == []
        assert len(backend.calls) == 2


class TestProgress:

    def test_stage_order(self, make_backend):
        backend = make_backend(replies=["a", "b", "c", SYNTHESIS_REPLY])
        events = []
        ExplainPipeline(backend, on_progress=lambda *e: events.append(e)).run(_big_input())
        assert events == [
            (PipelineStage.SPLITTING, 0, 0),
            (PipelineStage.SEGMENT, 1, 3),
            (PipelineStage.SEGMENT, 2, 3),
            (PipelineStage.SEGMENT, 3, 3),
            (PipelineStage.SYNTHESIZING, 3, 3),
            (PipelineStage.DONE, 3, 3),
        ]

    def test_empty_input_goes_straight_to_done(self, make_backend):
        events = []
        ExplainPipeline(make_backend(), on_progress=lambda *e: events.append(e)).run("")
        assert [e[0] for e in events] == [PipelineStage.SPLITTING, PipelineStage.DONE]


class TestFailures:

    def test_partial_results_reported(self, make_backend):
        backend = make_backend(replies=["part one", BackendError("API error (400): bad request")])
        with pytest.raises(PipelineError) as exc_info:
            _explain(backend, _big_input())

        err = exc_info.value
        assert [r.explanation for r in err.completed] == ["part one"]
        assert isinstance(err.cause, BackendError)
        assert "1/3" in str(err)
        assert len(backend.calls) == 2

    def test_unexpected_error_keeps_completed_segments(self, make_backend):
        broken = OSError("Connection broken: IncompleteRead")
        backend = make_backend(replies=["part one", broken])
        with pytest.raises(PipelineError) as exc_info:
            _explain(backend, _big_input())

        err = exc_info.value
        assert [(r.start_line, r.explanation) for r in err.completed] == [(1, "part one")]
        assert err.cause is broken
        assert err.__cause__ is broken
        assert len(backend.calls) == 2

    def test_synthesis_failure_keeps_all_segments(self, make_backend):
        backend = make_backend(replies=["a", "b", "c", ConfigurationError("no key")])
        with pytest.raises(PipelineError) as exc_info:
            _explain(backend, _big_input())
        assert len(exc_info.value.completed) == 3

    def test_transient_failure_is_retried_inside_segment(self, make_backend, no_sleep):
        backend = make_backend(replies=[BackendError("Connection refused"), "ok", "1. q"])
        result = _explain(backend, "echo hi")
        assert result.summary == "ok"
        assert len(no_sleep) == 1
