"""Structured error types for shellsage."""

from typing import List, Optional


class ShellSageError(Exception):
    """Base error for all shellsage operations."""
    pass


class ConfigurationError(ShellSageError):
    """Missing or invalid provider configuration. Never retried."""
    pass


class BackendError(ShellSageError):
    """Error reported by (or while talking to) a model backend."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class EmptyResponseError(BackendError):
    """Backend answered successfully but the payload had no usable text."""
    pass


class PipelineError(ShellSageError):
    """Raised when an explain run fails part way through.

    ``completed`` holds the segment results that finished before the
    failure, in segment order.
    """

    def __init__(self, message: str, completed: Optional[List] = None,
                 cause: Optional[BaseException] = None):
        self.completed = list(completed or [])
        self.cause = cause
        super().__init__(message)
