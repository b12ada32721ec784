"""Explain pipeline: split large input, explain each segment, synthesize.

Stages run strictly in order on the caller's thread:
Idle → Splitting → Segment(1..N) → Synthesizing → Done.
Retrying is delegated to the execution layer; this module never retries.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from . import prompts
from .backends.base import Backend
from .chunker import CONTEXT_OVERLAP_LINES, MAX_SEGMENT_LINES, Segment, split_segments
from .errors import PipelineError
from .execution import (
    DEFAULT_RETRY_POLICY, GenerationRequest, RetryPolicy, run_streaming, run_with_retry,
)
from .synthesis import SynthesisResult, parse_numbered_questions, parse_synthesis_response

__all__ = [
    "PipelineStage", "SegmentResult", "ExplainResult", "ExplainPipeline",
]

_log = logging.getLogger(__name__)


class PipelineStage(Enum):
    IDLE = "idle"
    SPLITTING = "splitting"
    SEGMENT = "segment"
    SYNTHESIZING = "synthesizing"
    DONE = "done"


@dataclass
class SegmentResult:
    start_line: int
    end_line: int
    explanation: str


@dataclass
class ExplainResult:
    total_lines: int
    total_segments: int
    segment_results: List[SegmentResult] = field(default_factory=list)
    summary: str = ""
    followup_questions: List[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.total_segments == 0


ProgressCallback = Callable[[PipelineStage, int, int], None]
SegmentTokenCallback = Callable[[int, str], None]


class ExplainPipeline:
    """One explain run per ``run()`` call; no state survives between runs."""

    def __init__(self, backend: Backend, *,
                 stream: bool = False,
                 on_token: Optional[SegmentTokenCallback] = None,
                 on_progress: Optional[ProgressCallback] = None,
                 segment_max_tokens: int = 2048,
                 synthesis_max_tokens: int = 2048,
                 followup_max_tokens: int = 512,
                 max_segment_lines: int = MAX_SEGMENT_LINES,
                 overlap_lines: int = CONTEXT_OVERLAP_LINES,
                 retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY):
        self.backend = backend
        self.stream = stream and on_token is not None
        self.on_token = on_token
        self.on_progress = on_progress
        self.segment_max_tokens = segment_max_tokens
        self.synthesis_max_tokens = synthesis_max_tokens
        self.followup_max_tokens = followup_max_tokens
        self.max_segment_lines = max_segment_lines
        self.overlap_lines = overlap_lines
        self.retry_policy = retry_policy

    def _report(self, stage: PipelineStage, index: int = 0, total: int = 0):
        if self.on_progress:
            self.on_progress(stage, index, total)

    def run(self, text: str) -> ExplainResult:
        started = time.perf_counter()

        self._report(PipelineStage.SPLITTING)
        segments = split_segments(text, max_lines=self.max_segment_lines, overlap=self.overlap_lines)
        total_lines = len(text.splitlines()) if segments else 0
        total = len(segments)
        _log.info("Explaining %d lines in %d segment(s) (max %d lines each)",
                  total_lines, total, self.max_segment_lines)

        if not segments:
            self._report(PipelineStage.DONE)
            return ExplainResult(total_lines=0, total_segments=0,
                                 elapsed=time.perf_counter() - started)

        results: List[SegmentResult] = []
        try:
            for index, segment in enumerate(segments, start=1):
                self._report(PipelineStage.SEGMENT, index, total)
                results.append(self._explain_segment(segment, index, total))

            self._report(PipelineStage.SYNTHESIZING, total, total)
            if total == 1:
                synthesis = SynthesisResult(
                    summary=results[0].explanation,
                    followups=self._followups_only(results[0].explanation),
                )
            else:
                synthesis = self._synthesize(results, total_lines)
        except Exception as e:
            raise PipelineError(
                f"Explain failed after {len(results)}/{total} segment(s): {e}",
                completed=results, cause=e,
            ) from e

        self._report(PipelineStage.DONE, total, total)
        return ExplainResult(
            total_lines=total_lines,
            total_segments=total,
            segment_results=results,
            summary=synthesis.summary,
            followup_questions=synthesis.followups,
            elapsed=time.perf_counter() - started,
        )

    def _explain_segment(self, segment: Segment, index: int, total: int) -> SegmentResult:
        _log.info("Segment %d/%d: lines %d-%d (%d lines)",
                  index, total, segment.start_line, segment.end_line, segment.line_count)
        request = GenerationRequest(
            system_prompt=prompts.segment_system_prompt(index, total),
            user_prompt=prompts.segment_user_prompt(
                segment.start_line, segment.end_line, segment.content, segment.context_prefix,
            ),
            max_tokens=self.segment_max_tokens,
        )
        if self.stream:
            text = run_streaming(
                self.backend, request,
                lambda token: self.on_token(index, token),
                self.retry_policy,
            )
        else:
            text = run_with_retry(self.backend, request, self.retry_policy)
        return SegmentResult(segment.start_line, segment.end_line, text)

    def _synthesize(self, results: List[SegmentResult], total_lines: int) -> SynthesisResult:
        # Every segment's full text goes in; nothing is trimmed before this point.
        sections = [
            f"### Lines {r.start_line}-{r.end_line}\n{r.explanation}" for r in results
        ]
        request = GenerationRequest(
            system_prompt=prompts.SYNTHESIS_PROMPT,
            user_prompt=prompts.synthesis_user_prompt(total_lines, len(results), sections),
            max_tokens=self.synthesis_max_tokens,
        )
        # Always blocking: the sections can only be parsed from the complete text.
        response = run_with_retry(self.backend, request, self.retry_policy)
        return parse_synthesis_response(response)

    def _followups_only(self, explanation: str) -> List[str]:
        request = GenerationRequest(
            system_prompt=prompts.FOLLOWUP_PROMPT,
            user_prompt=explanation,
            max_tokens=self.followup_max_tokens,
        )
        response = run_with_retry(self.backend, request, self.retry_policy)
        return parse_numbered_questions(response)
