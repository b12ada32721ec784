"""ExplainWorker: runs the explain pipeline off the UI thread.

The worker posts ``WorkerMessage`` items to a ``queue.Queue``; the UI drains
the queue and renders. Exactly one DONE or FAILED message ends every run.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .backends.base import Backend
from .errors import PipelineError, ShellSageError
from .explain import ExplainPipeline, ExplainResult, PipelineStage

_log = logging.getLogger(__name__)


class WorkerMessageKind(Enum):
    TOKEN = "token"          # one streamed token of segment ``index``
    PROGRESS = "progress"    # pipeline entered ``stage``
    DONE = "done"            # ``result`` holds the ExplainResult
    FAILED = "failed"        # ``error`` holds the exception


@dataclass
class WorkerMessage:
    kind: WorkerMessageKind
    text: str = ""
    stage: Optional[PipelineStage] = None
    index: int = 0
    total: int = 0
    result: Optional[ExplainResult] = None
    error: Optional[BaseException] = None
    timestamp: float = field(default_factory=time.time)


class ExplainWorker(threading.Thread):
    """Daemon thread that explains one input and reports through ``outbox``."""

    def __init__(self, backend: Backend, text: str, *,
                 outbox: Optional["queue.Queue[WorkerMessage]"] = None,
                 stream: bool = True,
                 **pipeline_kwargs: Any):
        super().__init__(name=f"explain-{backend.name}", daemon=True)
        self.backend = backend
        self.text = text
        self.outbox: "queue.Queue[WorkerMessage]" = outbox if outbox is not None else queue.Queue()
        self.pipeline = ExplainPipeline(
            backend,
            stream=stream,
            on_token=self._post_token if stream else None,
            on_progress=self._post_progress,
            **pipeline_kwargs,
        )

    def _post_token(self, index: int, token: str):
        self.outbox.put(WorkerMessage(kind=WorkerMessageKind.TOKEN, text=token, index=index))

    def _post_progress(self, stage: PipelineStage, index: int, total: int):
        self.outbox.put(WorkerMessage(
            kind=WorkerMessageKind.PROGRESS, stage=stage, index=index, total=total,
        ))

    def run(self):
        t0 = time.perf_counter()
        try:
            result = self.pipeline.run(self.text)
        except ShellSageError as e:
            _log.error("Explain worker failed after %.1fs: %s", time.perf_counter() - t0, e)
            self.outbox.put(WorkerMessage(kind=WorkerMessageKind.FAILED, text=str(e), error=e))
            return
        except Exception as e:
            _log.exception("Explain worker crashed")
            self.outbox.put(WorkerMessage(
                kind=WorkerMessageKind.FAILED, text=f"Unexpected error: {e}",
                error=PipelineError(f"Unexpected error: {e}", cause=e),
            ))
            return
        self.outbox.put(WorkerMessage(kind=WorkerMessageKind.DONE, result=result))

    def messages(self, poll_interval: float = 0.1):
        """Yield messages until the terminal DONE/FAILED message (inclusive)."""
        while True:
            try:
                msg = self.outbox.get(timeout=poll_interval)
            except queue.Empty:
                if not self.is_alive() and self.outbox.empty():
                    return
                continue
            yield msg
            if msg.kind in (WorkerMessageKind.DONE, WorkerMessageKind.FAILED):
                return
