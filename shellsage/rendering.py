"""Terminal rendering for command suggestions, explanations and tables."""

from typing import Dict, List, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from .backends.base import ModelInfo
from .commands import CommandSuggestion
from .explain import ExplainResult, PipelineStage, SegmentResult
from .theme import ACCENT, BORDER, DIM, ERROR, INFO, MUTED, SEPARATOR, SUCCESS, TEXT, WARN

__all__ = [
    "render_error", "render_warning", "render_command", "write_token", "render_segment_header",
    "render_segment", "render_explanation", "render_followups", "render_progress",
    "render_models", "render_providers", "render_config",
]


def render_error(console: Console, message: str):
    panel = Panel(
        f"[{ERROR}]{message}[/{ERROR}]",
        title=f"[bold {ERROR}]Error[/bold {ERROR}]",
        title_align="left",
        border_style=ERROR,
        padding=(0, 2),
    )
    console.print()
    console.print(panel)


def render_warning(console: Console, message: str):
    console.print(f"  [{WARN}]⚠ {message}[/{WARN}]")


def render_command(console: Console, suggestion: CommandSuggestion):
    if suggestion.declined:
        console.print(f"  [{WARN}]{suggestion.declined}[/{WARN}]")
        return
    if not suggestion.command:
        render_warning(console, "The model did not return a command.")
        return

    console.print(Panel(
        Text(suggestion.command, style=f"bold {TEXT}"),
        title=f"[bold {ACCENT}] Command [/bold {ACCENT}]",
        title_align="left",
        border_style=BORDER,
        padding=(0, 2),
    ))
    if suggestion.tool_missing:
        render_warning(console, f"'{suggestion.tool}' was not found on PATH.")


def write_token(console: Console, chunk: str):
    """Write a streamed chunk straight to the console stream, unformatted."""
    if not chunk:
        return
    stream = getattr(console, "file", None)
    if stream is not None and hasattr(stream, "write"):
        stream.write(chunk)
        if hasattr(stream, "flush"):
            stream.flush()
        return
    console.print(chunk, end="", markup=False, highlight=False, soft_wrap=True)


def render_segment_header(console: Console, index: int, total: int,
                          start_line: Optional[int] = None, end_line: Optional[int] = None):
    title = f"[bold {ACCENT}]Part {index}/{total}[/bold {ACCENT}]"
    if start_line is not None and end_line is not None:
        title += f" [{DIM}]lines {start_line}-{end_line}[/{DIM}]"
    console.print(Rule(title, style=SEPARATOR, align="left"))


def render_segment(console: Console, result: SegmentResult, index: int, total: int):
    if total > 1:
        render_segment_header(console, index, total, result.start_line, result.end_line)
    console.print(Markdown(result.explanation))


def render_followups(console: Console, questions: List[str]):
    if not questions:
        return
    console.print()
    console.print(f"[bold {ACCENT}]Follow-up questions[/bold {ACCENT}]")
    for i, question in enumerate(questions, start=1):
        console.print(f"  [{DIM}]{i}.[/{DIM}] {question}")


def render_explanation(console: Console, result: ExplainResult, show_segments: bool = True):
    """Render a finished explain run.

    ``show_segments`` is False when the segment texts were already streamed.
    """
    if result.is_empty:
        render_warning(console, "Nothing to explain: the input is empty.")
        return

    total = result.total_segments
    if show_segments:
        for i, segment in enumerate(result.segment_results, start=1):
            render_segment(console, segment, i, total)

    if total > 1:
        console.print()
        console.print(Panel(
            Markdown(result.summary),
            title=f"[bold {ACCENT}] Summary [/bold {ACCENT}]",
            title_align="left",
            border_style=BORDER,
            padding=(0, 1),
        ))
    render_followups(console, result.followup_questions)
    console.print(
        f"\n[{DIM}]{result.total_lines} lines · {total} part(s) · {result.elapsed:.1f}s[/{DIM}]"
    )


def render_progress(stage: PipelineStage, index: int, total: int) -> Optional[str]:
    """Status line for a pipeline stage, or None when nothing should be shown."""
    if stage is PipelineStage.SPLITTING:
        return "Splitting input..."
    if stage is PipelineStage.SEGMENT:
        return f"Explaining part {index}/{total}..." if total > 1 else "Explaining..."
    if stage is PipelineStage.SYNTHESIZING:
        return "Synthesizing summary..." if total > 1 else "Generating follow-up questions..."
    return None


def render_models(console: Console, provider_name: str, models: List[ModelInfo], active_model: str = ""):
    if not models:
        render_warning(console, f"No models reported by '{provider_name}'.")
        return

    table = Table(border_style=BORDER)
    table.add_column("", width=2)
    table.add_column("Model", style=f"bold {ACCENT}")
    table.add_column("Size", style=DIM)
    for model in models:
        marker = f"[{SUCCESS}]●[/{SUCCESS}]" if model.id == active_model else " "
        if model.size:
            size = f"{model.size / (1024 ** 3):.1f} GB"
        elif model.param_billions:
            size = f"~{model.param_billions:g}B params"
        else:
            size = "-"
        table.add_row(marker, model.name, size)
    console.print(Panel(table, title=f"[bold {ACCENT}] Models · {provider_name} [/bold {ACCENT}]",
                        title_align="left", border_style=BORDER))


def render_providers(console: Console, providers: List[Dict], availability: Dict[str, bool]):
    table = Table(border_style=BORDER)
    table.add_column("", width=2)
    table.add_column("Name", style=f"bold {ACCENT}")
    table.add_column("Kind", style=MUTED)
    table.add_column("Model", style=TEXT)
    table.add_column("Base URL", style=DIM)
    table.add_column("Key", style=DIM)
    table.add_column("Status")
    for p in providers:
        marker = f"[{SUCCESS}]●[/{SUCCESS}]" if p["active"] else " "
        if availability.get(p["name"]):
            status = f"[{SUCCESS}]available[/{SUCCESS}]"
        else:
            status = f"[{ERROR}]unavailable[/{ERROR}]"
        table.add_row(
            marker, p["name"], p["kind"], p["model"], p["base_url"],
            "set" if p["key"] else "-", status,
        )
    console.print(Panel(table, title=f"[bold {ACCENT}] Providers [/bold {ACCENT}]",
                        title_align="left", border_style=BORDER))


def render_config(console: Console, summary: Dict):
    table = Table(show_header=False, border_style=BORDER, padding=(0, 2), box=None)
    table.add_column("Key", style=f"bold {ACCENT}", min_width=14)
    table.add_column("Value", style=TEXT)
    for key, value in summary.items():
        table.add_row(key, str(value))
    console.print(Panel(table, title=f"[bold {ACCENT}] Configuration [/bold {ACCENT}]",
                        title_align="left", border_style=BORDER, padding=(0, 1)))
    console.print(f"  [{INFO}]Edit with:[/{INFO}] shellsage config set <key> <value>")
