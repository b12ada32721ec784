"""Shared fixtures for shellsage tests."""

import os
from typing import Callable, List, Optional, Union
from unittest.mock import MagicMock

import pytest
import yaml

from shellsage import config as config_module
from shellsage import execution
from shellsage.backends.base import Backend, ModelInfo


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    """Point the global config file at a throwaway directory."""
    config_dir = tmp_path / "home" / ".shellsage"
    monkeypatch.setattr(config_module, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_dir / "config.yml")
    for var in ("SHELLSAGE_PROVIDER", "SHELLSAGE_VERBOSE", "SHELLSAGE_STREAM"):
        monkeypatch.delenv(var, raising=False)
    return config_dir


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Record backoff delays instead of sleeping."""
    delays: List[float] = []
    monkeypatch.setattr(execution.time, "sleep", delays.append)
    return delays


@pytest.fixture
def sample_config_data():
    """Minimal .shellsage.yml data dict."""
    return {
        "active-provider": "local",
        "verbose": False,
        "stream": False,
        "request-timeout": 60,
        "segment-max-tokens": 1024,
        "synthesis-max-tokens": 1500,
        "command-max-tokens": 256,
        "providers": {
            "local": {
                "kind": "ollama",
                "base-url": "http://localhost:11434",
                "model": "llama3.2:3b",
                "options": {"temperature": "0.3", "num_ctx": "8192"},
            },
            "remote": {
                "kind": "openai_compat",
                "base-url": "http://localhost:8080/v1",
                "model": "test-model",
                "api-key": "sk-test",
            },
        },
    }


@pytest.fixture
def config_yaml_file(tmp_dir, sample_config_data):
    """Write a config YAML to tmp_dir and return its Path."""
    path = tmp_dir / ".shellsage.yml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path


Reply = Union[str, Exception]


class FakeBackend(Backend):
    """Backend stub that replays scripted replies and records every call.

    Each reply is a string (returned) or an exception (raised). Streaming
    replies may be a list of tokens, optionally ending with an exception.
    """

    def __init__(self, replies: Optional[List] = None, stream_replies: Optional[List] = None,
                 name: str = "fake"):
        self._name = name
        self.replies = list(replies or [])
        self.stream_replies = list(stream_replies or [])
        self.calls: List[dict] = []
        self.stream_calls: List[dict] = []

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return True

    def generate(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        self.calls.append({"system": system_prompt, "user": user_prompt, "max_tokens": max_tokens})
        reply = self.replies.pop(0) if self.replies else "ok"
        if isinstance(reply, Exception):
            raise reply
        return reply

    def generate_stream(self, system_prompt: str, user_prompt: str, max_tokens: int,
                        on_token: Callable[[str], None]) -> str:
        self.stream_calls.append({"system": system_prompt, "user": user_prompt, "max_tokens": max_tokens})
        reply = self.stream_replies.pop(0) if self.stream_replies else ["ok"]
        if isinstance(reply, Exception):
            raise reply
        text = ""
        for item in reply:
            if isinstance(item, Exception):
                raise item
            on_token(item)
            text += item
        return text

    def list_models(self) -> List[ModelInfo]:
        return [ModelInfo(id="fake-1", name="fake-1")]


@pytest.fixture
def make_backend():
    return FakeBackend


@pytest.fixture
def mock_console():
    """A mock Rich Console that silently accepts all print calls."""
    c = MagicMock()
    c.print = MagicMock()
    return c
