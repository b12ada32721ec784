"""Tests for ExplainWorker message passing."""

import queue

from shellsage.errors import BackendError, PipelineError
from shellsage.explain import PipelineStage
from shellsage.worker import ExplainWorker, WorkerMessageKind


def _drain(worker, timeout=5.0):
    worker.start()
    worker.join(timeout)
    assert not worker.is_alive()
    return list(worker.messages(poll_interval=0.01))


class TestExplainWorker:

    def test_streamed_run(self, make_backend):
        backend = make_backend(stream_replies=[["Expl", "ained."]], replies=["1. Why?"])
        messages = _drain(ExplainWorker(backend, "echo hi", stream=True))

        kinds = [m.kind for m in messages]
        assert kinds[-1] is WorkerMessageKind.DONE
        assert kinds.count(WorkerMessageKind.DONE) == 1
        assert WorkerMessageKind.FAILED not in kinds

        tokens = [m.text for m in messages if m.kind is WorkerMessageKind.TOKEN]
        assert tokens == ["Expl", "ained."]
        assert all(m.index == 1 for m in messages if m.kind is WorkerMessageKind.TOKEN)

        stages = [m.stage for m in messages if m.kind is WorkerMessageKind.PROGRESS]
        assert stages == [
            PipelineStage.SPLITTING, PipelineStage.SEGMENT,
            PipelineStage.SYNTHESIZING, PipelineStage.DONE,
        ]

        result = messages[-1].result
        assert result.summary == "Explained."
        assert result.followup_questions == ["Why?"]

    def test_blocking_run_posts_no_tokens(self, make_backend):
        backend = make_backend(replies=["Explained.", "1. Why?"])
        messages = _drain(ExplainWorker(backend, "echo hi", stream=False))
        assert WorkerMessageKind.TOKEN not in [m.kind for m in messages]
        assert backend.stream_calls == []

    def test_failure_posts_single_failed(self, make_backend):
        backend = make_backend(replies=[BackendError("API error (400): bad request")])
        messages = _drain(ExplainWorker(backend, "echo hi", stream=False))

        terminal = [m for m in messages if m.kind in (WorkerMessageKind.DONE, WorkerMessageKind.FAILED)]
        assert len(terminal) == 1
        failed = terminal[0]
        assert failed.kind is WorkerMessageKind.FAILED
        assert isinstance(failed.error, PipelineError)
        assert failed.error.completed == []
        assert "400" in failed.text

    def test_unexpected_error_keeps_completed_segments(self, make_backend):
        big = "\n".join(f"x = {i}" for i in range(1, 451))
        backend = make_backend(replies=["part one", OSError("Connection broken")])
        messages = _drain(ExplainWorker(backend, big, stream=False))

        failed = messages[-1]
        assert failed.kind is WorkerMessageKind.FAILED
        assert isinstance(failed.error, PipelineError)
        assert [r.explanation for r in failed.error.completed] == ["part one"]
        assert isinstance(failed.error.cause, OSError)

    def test_empty_input_is_done(self, make_backend):
        backend = make_backend()
        messages = _drain(ExplainWorker(backend, ""))
        assert messages[-1].kind is WorkerMessageKind.DONE
        assert messages[-1].result.is_empty
        assert backend.calls == [] and backend.stream_calls == []

    def test_shared_outbox(self, make_backend):
        outbox = queue.Queue()
        worker = ExplainWorker(make_backend(replies=["x", "1. q"]), "echo hi", outbox=outbox, stream=False)
        worker.start()
        worker.join(5.0)
        assert outbox.qsize() > 0
        assert worker.outbox is outbox

    def test_pipeline_options_forwarded(self, make_backend):
        backend = make_backend(replies=["x", "1. q"])
        _drain(ExplainWorker(backend, "echo hi", stream=False, segment_max_tokens=333))
        assert backend.calls[0]["max_tokens"] == 333

    def test_thread_is_daemon(self, make_backend):
        assert ExplainWorker(make_backend(), "x").daemon is True
