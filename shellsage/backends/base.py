"""Uniform backend contract shared by every model adapter."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List

from ..errors import BackendError

_log = logging.getLogger(__name__)

TokenSink = Callable[[str], None]

_PARAM_TOKEN_RE = re.compile(r"^(\d+(?:\.\d+)?)b$")


@dataclass
class ModelInfo:
    id: str
    name: str
    size: int = 0
    param_billions: float = 0.0

    def __str__(self) -> str:
        if self.size > 0:
            return f"{self.name} ({self.size / (1024 ** 3):.1f} GB)"
        if self.param_billions > 0:
            return f"{self.name} (~{self.param_billions:.0f}B params)"
        return self.name


def estimate_param_billions(model_name: str, size_bytes: int = 0) -> float:
    """Guess a model's parameter count from its name, else from its size.

    ``qwen2.5-coder:7b`` -> 7.0. Sizes assume ~4-bit quantization.
    """
    for token in re.split(r"[:/_-]", model_name.lower()):
        match = _PARAM_TOKEN_RE.match(token)
        if match:
            return float(match.group(1))
    if size_bytes > 0:
        return size_bytes / (0.5 * 1_000_000_000)
    return 0.0


def warn_truncated(backend_name: str):
    """Output-length cap reached: the text is still usable, just cut short."""
    _log.warning("%s response truncated (hit max_tokens)", backend_name)


class Backend(ABC):
    """Capability contract every model backend implements.

    ``generate`` returns the complete answer. ``generate_stream`` feeds each
    text fragment to ``on_token`` in order and returns their exact
    concatenation.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    def generate(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        ...

    def generate_stream(self, system_prompt: str, user_prompt: str, max_tokens: int,
                        on_token: TokenSink) -> str:
        # No native incremental delivery: hand over the whole answer as one token.
        result = self.generate(system_prompt, user_prompt, max_tokens)
        on_token(result)
        return result

    @abstractmethod
    def list_models(self) -> List[ModelInfo]:
        ...


def salvage_partial_stream(backend_name: str, accumulated: str, error: Exception) -> str:
    """Transport died mid-stream: keep what arrived, or fail if nothing did."""
    if accumulated.strip():
        _log.warning("%s stream interrupted (%s); keeping partial output", backend_name, error)
        return accumulated
    raise BackendError(f"{backend_name} stream read error: {error}") from error
