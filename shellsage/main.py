"""
shellsage: LLM shell assistant for your terminal.

Commands: shellsage cmd | ask | explain | models | providers | config
"""

import functools
import sys
import traceback

import click
from rich.console import Console

from . import __version__
from .backends import create_backend
from .commands import describe_command, suggest_command
from .config import CONFIG_FIELDS, Config
from .errors import ConfigurationError, PipelineError, ShellSageError
from .explain import PipelineStage
from .logger import setup_logger
from .rendering import (
    render_command, render_config, render_error, render_explanation, render_models,
    render_progress, render_providers, render_segment, render_segment_header,
    write_token,
)
from .theme import DIM, SUCCESS
from .worker import ExplainWorker, WorkerMessageKind

console = Console()


def _guarded(func):
    """Render ShellSageError as an error panel and exit with status 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        ctx = click.get_current_context()
        try:
            return func(*args, **kwargs)
        except (ShellSageError, ValueError) as error:
            render_error(console, str(error))
            config = ctx.find_object(Config)
            if config is not None and config.verbose:
                console.print(f"[dim]{traceback.format_exc()}[/dim]")
            ctx.exit(1)
    return wrapper


def _active_backend(config: Config):
    provider = config.get_provider()
    return create_backend(provider, timeout=config.request_timeout)


@click.group()
@click.option("--provider", "-p", default=None, help="Provider name (overrides active-provider)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option("--project-dir", "-d", default=".", help="Directory to look for .shellsage.yml")
@click.version_option(__version__, prog_name="shellsage")
@click.pass_context
def cli(ctx, provider, verbose, project_dir):
    """shellsage: LLM shell assistant for your terminal."""
    try:
        config = Config.load(project_dir)
    except ConfigurationError as error:
        render_error(console, str(error))
        sys.exit(1)

    if provider:
        config.override("active_provider", provider)
    if verbose:
        config.override("verbose", True)
    setup_logger(console=console, verbose=config.verbose)
    ctx.obj = config


@cli.command()
@click.argument("query", nargs=-1, required=True)
@click.pass_obj
@_guarded
def cmd(config, query):
    """Turn a natural-language request into a shell command."""
    backend = _active_backend(config)
    with console.status(f"[{DIM}]Thinking ({backend.name})...[/{DIM}]"):
        suggestion = suggest_command(
            backend, " ".join(query), max_tokens=config.command_max_tokens,
        )
    render_command(console, suggestion)


@cli.command()
@click.argument("query", nargs=-1, required=True)
@click.pass_obj
@_guarded
def ask(config, query):
    """Explain a command or tool (streamed)."""
    backend = _active_backend(config)
    console.print()
    describe_command(backend, " ".join(query), lambda token: write_token(console, token))
    console.print()


def _read_input(file_path):
    if file_path:
        with open(file_path, encoding="utf-8", errors="replace") as f:
            return f.read()
    stdin = click.get_text_stream("stdin")
    if stdin.isatty():
        raise ValueError(
            "Nothing to explain.\nUsage: shellsage explain -f FILE  or  cat FILE | shellsage explain"
        )
    return stdin.read()


@cli.command()
@click.option("--file", "-f", "file_path", type=click.Path(exists=True, dir_okay=False),
              default=None, help="File to explain (default: stdin)")
@click.option("--no-stream", is_flag=True, help="Wait for each part instead of streaming")
@click.pass_obj
@_guarded
def explain(config, file_path, no_stream):
    """Explain code or text, splitting large inputs into parts."""
    text = _read_input(file_path)
    backend = _active_backend(config)
    stream = config.stream and not no_stream

    worker = ExplainWorker(
        backend, text,
        stream=stream,
        segment_max_tokens=config.segment_max_tokens,
        synthesis_max_tokens=config.synthesis_max_tokens,
    )
    worker.start()

    status = None if stream else console.status(f"[{DIM}]Starting...[/{DIM}]")
    if status is not None:
        status.start()
    mid_line = False
    try:
        for msg in worker.messages():
            if msg.kind is WorkerMessageKind.TOKEN:
                write_token(console, msg.text)
                mid_line = not msg.text.endswith("\n")
                continue

            if mid_line:
                console.print()
                mid_line = False

            if msg.kind is WorkerMessageKind.PROGRESS:
                label = render_progress(msg.stage, msg.index, msg.total)
                if status is not None and label:
                    status.update(f"[{DIM}]{label}[/{DIM}]")
                elif msg.stage is PipelineStage.SEGMENT and msg.total > 1:
                    render_segment_header(console, msg.index, msg.total)
            elif msg.kind is WorkerMessageKind.DONE:
                if status is not None:
                    status.stop()
                    status = None
                render_explanation(console, msg.result, show_segments=not stream)
            elif msg.kind is WorkerMessageKind.FAILED:
                if status is not None:
                    status.stop()
                    status = None
                error = msg.error
                if isinstance(error, PipelineError) and error.completed and not stream:
                    total = len(error.completed) + 1
                    for i, segment in enumerate(error.completed, start=1):
                        render_segment(console, segment, i, total)
                if isinstance(error, ShellSageError):
                    raise error
                raise PipelineError(msg.text)
    except KeyboardInterrupt:
        console.print(f"\n[{DIM}]Interrupted.[/{DIM}]")
        sys.exit(130)
    finally:
        if status is not None:
            status.stop()


@cli.command()
@click.pass_obj
@_guarded
def models(config):
    """List models offered by the active provider."""
    provider = config.get_provider()
    backend = create_backend(provider, timeout=config.request_timeout)
    with console.status(f"[{DIM}]Fetching models from {provider.name}...[/{DIM}]"):
        available = backend.list_models()
    render_models(console, provider.name, available, active_model=provider.model)


@cli.command()
@click.pass_obj
@_guarded
def providers(config):
    """Show configured providers and whether they are reachable."""
    availability = {}
    with console.status(f"[{DIM}]Checking providers...[/{DIM}]"):
        for name, provider in config.providers.items():
            try:
                backend = create_backend(provider, timeout=config.request_timeout)
            except ConfigurationError:
                availability[name] = False
                continue
            availability[name] = backend.is_available()
    render_providers(console, config.list_providers(), availability)


@cli.group("config", invoke_without_command=True)
@click.pass_context
def config_cmd(ctx):
    """Show or change configuration."""
    if ctx.invoked_subcommand is None:
        render_config(console, ctx.obj.summary())


@config_cmd.command("show")
@click.pass_obj
def config_show(config):
    """Show configuration."""
    render_config(console, config.summary())


@config_cmd.command("set")
@click.argument("key", type=click.Choice(sorted(CONFIG_FIELDS)))
@click.argument("value")
@click.pass_obj
@_guarded
def config_set(config, key, value):
    """Set KEY to VALUE and save it."""
    ok, error = config.set_config_value(key, value)
    if not ok:
        raise ConfigurationError(error)
    console.print(
        f"  [{SUCCESS}]✓[/{SUCCESS}] {key} = {config.get_config_value(key)} "
        f"[{DIM}]({config._config_source})[/{DIM}]"
    )


@config_cmd.command("reset")
@click.argument("key", type=click.Choice(sorted(CONFIG_FIELDS)))
@click.pass_obj
@_guarded
def config_reset(config, key):
    """Reset KEY to its default value."""
    ok, error = config.reset_config_value(key)
    if not ok:
        raise ConfigurationError(error)
    console.print(f"  [{SUCCESS}]✓[/{SUCCESS}] {key} reset to {config.get_config_value(key)}")


if __name__ == "__main__":
    cli()
