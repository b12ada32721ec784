"""Request execution: retry classification, exponential backoff, stream fallback.

Every backend call made by the explain pipeline and the command mode goes
through one of ``run_once``, ``run_with_retry`` or ``run_streaming``.
Backoff sleeps block the calling thread only.
"""

import logging
import random
import re
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from .backends.base import Backend
from .errors import BackendError, ConfigurationError, EmptyResponseError, ShellSageError

__all__ = [
    "GenerationRequest", "RetryPolicy", "DEFAULT_RETRY_POLICY",
    "is_retryable", "retry_delay", "run_once", "run_with_retry", "run_streaming",
]

_log = logging.getLogger(__name__)

_TRANSIENT_PATTERNS = (
    "connection",
    "timeout",
    "timed out",
    "reset by peer",
    "broken pipe",
    "eof",
    "dns",
    "resolve",
    "name or service not known",
    "rate limit",
    "too many requests",
    "overloaded",
    "model is loading",
    "model loading",
    "loading model",
)
_TRANSIENT_STATUS_CODES = (429, 500, 502, 503, 504, 529)
_TRANSIENT_STATUS_RE = re.compile(r"\b(429|500|502|503|504|529)\b")

# Checked first: a 429 that means "out of credit" will not heal by waiting.
_TERMINAL_PATTERNS = (
    "insufficient_quota",
    "quota exceeded",
    "exceeded your current quota",
    "billing",
    "invalid api key",
    "invalid_api_key",
    "unauthorized",
    "permission denied",
)

_SUMMARY_LIMIT = 80


@dataclass(frozen=True)
class GenerationRequest:
    system_prompt: str
    user_prompt: str
    max_tokens: int = 2048


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.1

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


DEFAULT_RETRY_POLICY = RetryPolicy()


def is_retryable(error: BaseException) -> bool:
    """Classify a failure as transient (retry) or terminal (give up now)."""
    if isinstance(error, ConfigurationError):
        return False
    if isinstance(error, EmptyResponseError):
        return True

    message = str(error).lower()
    if any(p in message for p in _TERMINAL_PATTERNS):
        return False
    status = getattr(error, "status_code", None)
    if status in _TRANSIENT_STATUS_CODES:
        return True
    # A known client error is final whatever its body happens to say.
    if status is not None and 400 <= status < 500:
        return False
    if any(p in message for p in _TRANSIENT_PATTERNS):
        return True
    return bool(_TRANSIENT_STATUS_RE.search(message))


def retry_delay(attempt: int, policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> float:
    """Seconds to wait after 0-indexed ``attempt`` failed. Never above ``max_delay``."""
    delay = min(policy.base_delay * (2 ** attempt), policy.max_delay)
    delay += random.uniform(0, delay * policy.jitter)
    return min(delay, policy.max_delay)


def _summarize_error(error: BaseException) -> str:
    text = " ".join(str(error).split())
    if len(text) > _SUMMARY_LIMIT:
        return text[:_SUMMARY_LIMIT - 3] + "…"
    return text


def run_once(backend: Backend, request: GenerationRequest) -> str:
    """One blocking call. Returns trimmed non-empty text or raises."""
    text = backend.generate(request.system_prompt, request.user_prompt, request.max_tokens)
    trimmed = (text or "").strip()
    if not trimmed:
        raise EmptyResponseError(f"{backend.name} returned empty response")
    return trimmed


def run_with_retry(backend: Backend, request: GenerationRequest,
                   policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> str:
    """Blocking call with bounded exponential backoff on transient failures."""
    last_error: Optional[BaseException] = None

    for attempt in range(policy.max_attempts):
        try:
            return run_once(backend, request)
        except ShellSageError as e:
            if not is_retryable(e):
                raise
            last_error = e
            if attempt == policy.max_retries:
                break
            delay = retry_delay(attempt, policy)
            _log.warning(
                "%s, retrying in %.1fs… (%d/%d)",
                "Empty response" if isinstance(e, EmptyResponseError) else _summarize_error(e),
                delay, attempt + 1, policy.max_retries,
            )
            time.sleep(delay)

    if isinstance(last_error, EmptyResponseError):
        raise EmptyResponseError(
            f"{backend.name} returned empty response after {policy.max_attempts} attempts"
        ) from last_error
    if last_error is not None:
        raise last_error
    raise BackendError("All retry attempts exhausted")


def run_streaming(backend: Backend, request: GenerationRequest,
                  on_token: Callable[[str], None],
                  policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> str:
    """Stream once; on a transient failure before any text, fall back to blocking.

    The returned text always equals the concatenation of everything passed
    to ``on_token``. Terminal failures are raised as-is, never downgraded.
    """
    delivered: List[str] = []

    def _sink(token: str):
        delivered.append(token)
        on_token(token)

    try:
        text = backend.generate_stream(
            request.system_prompt, request.user_prompt, request.max_tokens, _sink,
        )
        if not (text or "").strip():
            raise EmptyResponseError(f"{backend.name} returned empty response")
        return text
    except ShellSageError as e:
        if not is_retryable(e) or "".join(delivered).strip():
            raise
        _log.warning("Stream failed (%s), retrying without streaming…", _summarize_error(e))

    # Whitespace-only tokens may already have been delivered; keep them in the result.
    prefix = "".join(delivered)
    result = run_with_retry(backend, request, policy)
    on_token(result)
    return prefix + result
