"""Instruction texts sent to the model, and the system context they embed."""

import os
import platform
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .synthesis import MAX_FOLLOWUPS

# Probed in order; only the ones on PATH are mentioned to the model.
KNOWN_TOOLS = (
    "git", "docker", "kubectl", "python3", "node", "npm", "cargo", "go",
    "curl", "wget", "jq", "rg", "fd", "fzf", "htop", "tmux", "ffmpeg",
    "systemctl", "brew", "apt", "dnf", "pacman", "ollama",
)


@dataclass
class SystemContext:
    os: str
    arch: str
    shell: str
    working_dir: str
    available_tools: List[str] = field(default_factory=list)


def detect_shell() -> str:
    shell = os.environ.get("SHELL") or os.environ.get("COMSPEC") or ""
    return Path(shell).name if shell else "sh"


def gather_context() -> SystemContext:
    return SystemContext(
        os=platform.system().lower() or "unknown",
        arch=platform.machine() or "unknown",
        shell=detect_shell(),
        working_dir=os.getcwd(),
        available_tools=[tool for tool in KNOWN_TOOLS if shutil.which(tool)],
    )


# ── Command mode ──

def cmd_system_prompt(ctx: SystemContext) -> str:
    return f"""\
You are a helpful shell command generator. Output ONLY the command, nothing else.

SYSTEM INFO:
- OS: {ctx.os}
- Architecture: {ctx.arch}
- Shell: {ctx.shell}
- Current directory: {ctx.working_dir}
- Available tools: {", ".join(ctx.available_tools) or "(none detected)"}

RULES:
- One command (use && or pipes to combine steps).
- If the request is unsafe, answer: Declined: <reason>
- If the request is too vague, answer: Please specify: <what is missing>

EXAMPLES:
"list files" → ls -la
"disk usage" → du -sh *
"find py files" → find . -name "*.py"
"git status" → git status
"ping google" → ping -c 4 google.com
"check memory" → free -h
"list processes" → ps aux

Command:"""


CMD_EXPLAIN_PROMPT = """\
You are a helpful shell command expert. The user will ask about a command or tool.
Provide a clear, concise explanation including:
1. What the command does
2. Common flags and options
3. Usage examples
4. Any safety considerations

Format with markdown. Be practical and concise."""


# ── Explain pipeline ──

SINGLE_SEGMENT_PROMPT = """\
You are an expert code analyst. Analyze the given code and provide:

1. **Overview**: What the code does at a high level
2. **Functions & Components**: Explain each function/method, its purpose, parameters, and return values
3. **Key Logic**: Highlight important algorithms, patterns, or design decisions
4. **Dependencies**: Note any imports, external libraries, or dependencies used

Be thorough but concise. Use markdown formatting."""


def segment_system_prompt(index: int, total: int) -> str:
    """Instruction for part ``index`` (1-based) of ``total``."""
    if total == 1:
        return SINGLE_SEGMENT_PROMPT
    return f"""\
You are an expert code analyst. You are analyzing part {index} of {total} of a larger input.

The message may start with a block marked [Context: ...] ... [End of context].
Those lines belong to the previous part and are shown only for continuity:
do NOT explain them; analyze only the numbered line range that follows.

Provide:

1. **Summary**: What this part does
2. **Functions & Components**: Explain each function/method in this part
3. **Key Details**: Important patterns, edge cases, or notable logic

Be thorough but concise. Use markdown formatting. Focus only on this part."""


def segment_user_prompt(start_line: int, end_line: int, content: str, context_prefix: str = "") -> str:
    body = f"Lines {start_line}-{end_line}:\n\n```\n{content}\n```"
    if context_prefix:
        return f"{context_prefix}\n\n{body}"
    return body


SYNTHESIS_PROMPT = f"""\
You are an expert code analyst. You have analyzed a large input in parts.
Now synthesize the part analyses into:

1. **Overall Summary** (2-3 paragraphs): What the whole input does, its architecture, and key design decisions
2. **Follow-up Questions**: Exactly {MAX_FOLLOWUPS} insightful follow-up questions that would help someone understand it better

Format your response exactly as:
## Summary
[your summary here]

## Follow-up Questions
1. [question 1]
2. [question 2]
3. [question 3]
4. [question 4]
5. [question 5]"""


def synthesis_user_prompt(total_lines: int, total_segments: int, sections: List[str]) -> str:
    combined = "\n\n---\n\n".join(sections)
    return (
        f"The input has {total_lines} total lines, analyzed in {total_segments} parts. "
        f"Here are the part analyses:\n\n{combined}"
    )


FOLLOWUP_PROMPT = f"""\
Based on the code explanation below, generate exactly {MAX_FOLLOWUPS} insightful follow-up questions \
that would help someone understand the code better. These could be about architecture, edge cases, \
potential improvements, testing, or usage.

Format your response as a numbered list:
1. [question]
2. [question]
3. [question]
4. [question]
5. [question]"""
