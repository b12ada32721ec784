"""Command mode: turn a natural-language request into one shell command."""

import re
import shlex
import shutil
from dataclasses import dataclass
from typing import Callable, Optional

from . import prompts
from .backends.base import Backend
from .execution import (
    DEFAULT_RETRY_POLICY, GenerationRequest, RetryPolicy, run_streaming, run_with_retry,
)

__all__ = ["CommandSuggestion", "extract_command", "first_tool", "suggest_command", "describe_command"]

_CODE_BLOCK_RE = re.compile(r"```(?:bash|sh|shell|zsh|fish|cmd|powershell|console)?[ \t]*\n([\s\S]*?)\n?```")
_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")
_STRIP_PREFIXES = ("Command:", "command:", "CMD:", "cmd:", "$ ", "> ")
_ENV_ASSIGN_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")
_DECLINE_PREFIXES = ("Declined:", "Please specify:")
_WRAPPER_PROGRAMS = {"sudo", "doas", "env", "nohup", "time", "exec", "command"}
_SHELL_BUILTINS = {"cd", "echo", "export", "source", ".", "alias", "set", "unset", "type", "exit", "read", "eval"}


@dataclass
class CommandSuggestion:
    command: str
    raw_response: str
    declined: Optional[str] = None
    tool: Optional[str] = None
    tool_missing: bool = False


def extract_command(response: str) -> str:
    """Pull the command out of a model reply that may be wrapped in prose or markdown."""
    text = response.strip()
    for prefix in _STRIP_PREFIXES:
        if text.startswith(prefix):
            text = text[len(prefix):].strip()

    match = _CODE_BLOCK_RE.search(text)
    if match:
        return match.group(1).strip()

    match = _INLINE_CODE_RE.search(text)
    if match:
        return match.group(1).strip()

    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("//"):
            continue
        for prefix in _STRIP_PREFIXES:
            if line.startswith(prefix):
                line = line[len(prefix):].strip()
        return line
    return ""


def _declined_message(command: str) -> Optional[str]:
    text = command
    if text.startswith('echo "') and text.endswith('"'):
        text = text[len('echo "'):-1]
    if text.startswith(_DECLINE_PREFIXES):
        return text
    return None


def first_tool(command: str) -> Optional[str]:
    """Program name the command runs first, skipping sudo and env assignments."""
    try:
        words = shlex.split(command)
    except ValueError:
        words = command.split()
    for word in words:
        if _ENV_ASSIGN_RE.match(word) or word in _WRAPPER_PROGRAMS or word.startswith("-"):
            continue
        return word
    return None


def suggest_command(backend: Backend, query: str,
                    context: Optional[prompts.SystemContext] = None,
                    max_tokens: int = 512,
                    policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> CommandSuggestion:
    if not query.strip():
        raise ValueError('Please provide a query.\nUsage: shellsage cmd "find all large files"')

    ctx = context or prompts.gather_context()
    request = GenerationRequest(
        system_prompt=prompts.cmd_system_prompt(ctx),
        user_prompt=query.strip(),
        max_tokens=max_tokens,
    )
    response = run_with_retry(backend, request, policy)
    command = extract_command(response)

    declined = _declined_message(command)
    if declined:
        return CommandSuggestion(command="", raw_response=response, declined=declined)

    tool = first_tool(command) if command else None
    return CommandSuggestion(
        command=command,
        raw_response=response,
        tool=tool,
        tool_missing=(
            bool(tool) and tool not in _SHELL_BUILTINS
            and "/" not in tool and shutil.which(tool) is None
        ),
    )


def describe_command(backend: Backend, query: str, on_token: Callable[[str], None],
                     max_tokens: int = 1024,
                     policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> str:
    """Stream a markdown explanation of a command or tool."""
    if not query.strip():
        raise ValueError('Please provide a command to explain.\nUsage: shellsage ask "tar -xzf"')
    request = GenerationRequest(
        system_prompt=prompts.CMD_EXPLAIN_PROMPT,
        user_prompt=query.strip(),
        max_tokens=max_tokens,
    )
    return run_streaming(backend, request, on_token, policy)
