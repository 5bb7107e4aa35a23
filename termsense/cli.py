"""termsense CLI — inspect patterns, classify sample lines and replay recordings."""

from __future__ import annotations

import codecs
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from termsense import __version__

app = typer.Typer(
    name="termsense",
    help="Terminal session intelligence: cwd, activity and AI assistant state from raw output.",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"[bold cyan]termsense[/bold cyan] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
):
    """Classify what is happening in your terminal sessions."""
    pass


# ── Patterns Command ────────────────────────────────────────


@app.command()
def patterns():
    """List cwd extraction and output-type patterns."""
    from termsense.engine.patterns import CWD_PATTERNS, OUTPUT_TYPE_PATTERNS

    table = Table(title="CWD Patterns", show_header=True, header_style="bold cyan")
    table.add_column("Priority", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Description", style="dim")

    for pattern in sorted(CWD_PATTERNS, key=lambda p: p.priority, reverse=True):
        table.add_row(str(pattern.priority), pattern.name, pattern.description)

    console.print(table)
    console.print()

    table = Table(title="Output Types", show_header=True, header_style="bold cyan")
    table.add_column("Type", style="bold")
    table.add_column("Label")
    table.add_column("Patterns", justify="right")

    for category in OUTPUT_TYPE_PATTERNS:
        table.add_row(
            f"[{category.color}]{category.output_type.value}[/{category.color}]",
            category.label,
            str(len(category.patterns)),
        )

    console.print(table)


# ── Assistants Command ──────────────────────────────────────


@app.command()
def assistants():
    """List all known AI assistants and their states."""
    from termsense.config import load_config
    from termsense.engine.assistants import load_assistants

    config = load_config()
    registry = load_assistants(config.detection.timing)

    table = Table(title="AI Assistants", show_header=True, header_style="bold cyan")
    table.add_column("Key", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Spinner")
    table.add_column("States")
    table.add_column("Timeouts", justify="right")

    for assistant in registry:
        states = ", ".join(
            f"[{s.color}]{s.name}[/{s.color}]" for s in assistant.states.values()
        )
        timing = assistant.timing
        table.add_row(
            assistant.id,
            f"[{assistant.color}]{assistant.name}[/{assistant.color}]",
            assistant.spinner or "[dim]none[/dim]",
            states,
            f"{timing.spinner_idle_timeout:g}s / {timing.idle_timeout:g}s",
        )

    console.print(table)


# ── Test Command ────────────────────────────────────────────


@app.command("test")
def test_line(
    line: str = typer.Argument(..., help="Terminal output to classify."),
    escapes: bool = typer.Option(
        False,
        "--escapes",
        "-e",
        help=r"Interpret backslash escapes such as \x1b and \n.",
    ),
):
    """
    Classify a single chunk of terminal output.

    Usage:
        termsense test 'user@host:~/src$ '
        termsense test --escapes '\\x1b[31mError: build failed\\x1b[0m'
    """
    from termsense.config import load_config
    from termsense.engine.activity import classify_output_type
    from termsense.engine.assistants import load_assistants
    from termsense.engine.cwd import CwdExtractor
    from termsense.engine.detector import AssistantDetector
    from termsense.engine.patterns import strip_ansi
    from termsense.models import SessionRecord

    if escapes:
        line = codecs.decode(line, "unicode_escape")

    console.print(f"\n[bold]Input:[/bold] {escape(repr(strip_ansi(line)))}\n")

    candidates = CwdExtractor().candidates(line)
    if candidates:
        best = candidates[0]
        console.print(f"  [green]✓ cwd[/green]          {escape(best.path)} [dim]({best.pattern_name})[/dim]")
        for other in candidates[1:]:
            console.print(f"    [dim]also {escape(other.path)} ({other.pattern_name})[/dim]")
    else:
        console.print("  [dim]✗ cwd          no match[/dim]")

    output_type = classify_output_type(line)
    if output_type is not None:
        console.print(f"  [green]✓ output type[/green]  {output_type.value}")
    else:
        console.print("  [dim]✗ output type  none[/dim]")

    config = load_config()
    registry = load_assistants(config.detection.timing)
    detector = AssistantDetector(registry)
    record = SessionRecord(session_id="test", started_at=0.0)
    detector.update(record, line, 0.0)

    if record.ai_assistant_id is not None:
        assistant = registry.get(record.ai_assistant_id)
        info = assistant.state_info(record.assistant_state)
        phase = f" (spinner phase {record.spinner_phase})" if record.spinner_phase is not None else ""
        console.print(
            f"  [green]✓ assistant[/green]    {assistant.name}: "
            f"[{info.color}]{info.label}[/{info.color}]{phase}"
        )
    else:
        console.print("  [dim]✗ assistant    none[/dim]")
    console.print()


# ── Replay Command ──────────────────────────────────────────


@app.command()
def replay(
    file: Path = typer.Argument(..., help="asciinema v2 cast or JSONL recording."),
    tick: float = typer.Option(0.5, "--tick", help="Decay sweep interval in seconds."),
    timeline: bool = typer.Option(
        False,
        "--timeline",
        help="Print every assistant state and cwd change.",
    ),
):
    """
    Replay a recording through the engine and show the final sessions.

    Git lookups are disabled during replay.
    """
    from termsense.config import load_config
    from termsense.engine.assistants import load_assistants
    from termsense.engine.buffer import ManualScheduler
    from termsense.engine.engine import SessionEngine
    from termsense.replay import RecordingError, load_recording
    from termsense.replay import replay as run_replay

    try:
        events = load_recording(file)
    except RecordingError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1)

    config = load_config()
    config.git.enabled = False
    config.detection.process_cwd_lookup = False
    engine = SessionEngine(
        config=config,
        assistants=load_assistants(config.detection.timing),
        scheduler=ManualScheduler(now=0.0),
    )
    result = run_replay(engine, events, tick=tick)

    console.print(
        f"\n[bold cyan]Replayed[/bold cyan] {len(events)} events "
        f"over {result.duration:.1f}s\n"
    )

    if timeline:
        rows = [
            (c.timestamp, c.session_id, f"{c.old_state} → {c.new_state}", c.reason)
            for c in result.state_changes
        ] + [(t, sid, f"cwd {escape(path)}", "prompt") for t, sid, path in result.cwd_changes]

        table = Table(title="Timeline", show_header=True, header_style="bold cyan")
        table.add_column("Time", justify="right")
        table.add_column("Session", style="dim")
        table.add_column("Change")
        table.add_column("Reason", style="dim")
        for t, sid, change, reason in sorted(rows, key=lambda r: r[0]):
            table.add_row(f"{t:.2f}s", sid, change, reason)
        console.print(table)
        console.print()

    table = Table(title="Sessions", show_header=True, header_style="bold cyan")
    table.add_column("Session", style="dim")
    table.add_column("Directory")
    table.add_column("Activity")
    table.add_column("Intensity", justify="right")
    table.add_column("Assistant")

    for session_id in result.session_ids:
        view = engine.get_session_view(session_id)
        if view is None:
            continue
        assistant = "[dim]—[/dim]"
        if view.assistant_name:
            color = view.assistant_color or "white"
            assistant = f"{view.assistant_name}: [{color}]{view.assistant_label}[/{color}]"
        activity = f"[{view.activity_color}]{view.activity_label}[/{view.activity_color}]"
        if view.output_label:
            activity += f" [dim]({view.output_label})[/dim]"
        table.add_row(
            session_id,
            escape(view.cwd) if view.cwd else "[dim]unknown[/dim]",
            activity,
            str(view.activity_intensity),
            assistant,
        )

    console.print(table)


# ── Config Commands ─────────────────────────────────────────


config_app = typer.Typer(help="Manage termsense configuration.")
app.add_typer(config_app, name="config")


@config_app.command("init")
def config_init():
    """Create default configuration files."""
    from termsense.config import (
        CONFIG_FILE,
        USER_ASSISTANTS_FILE,
        ensure_dirs,
        save_default_config,
    )

    ensure_dirs()

    if CONFIG_FILE.exists():
        console.print(f"[yellow]Config already exists:[/yellow] {CONFIG_FILE}")
    else:
        path = save_default_config()
        console.print(f"[green]✓[/green] Created config: {path}")

    if not USER_ASSISTANTS_FILE.exists():
        example = (
            "# termsense — Custom AI assistants\n"
            "# Add your own assistants here.\n"
            "#\n"
            "# custom_assistants:\n"
            "#   my_agent:\n"
            '#     name: "My Agent"\n'
            '#     spinner: "|/-\\\\"\n'
            "#     text_patterns:\n"
            "#       - 'my-agent v\\d'\n"
            "#     states:\n"
            "#       waiting:\n"
            "#         patterns:\n"
            "#           - 'READY>'\n"
            "#\n"
            "# overrides:\n"
            "#   timing:\n"
            "#     idle_timeout: 45\n"
        )
        USER_ASSISTANTS_FILE.write_text(example, encoding="utf-8")
        console.print(f"[green]✓[/green] Created assistants: {USER_ASSISTANTS_FILE}")
    else:
        console.print(
            f"[yellow]Assistants already exists:[/yellow] {USER_ASSISTANTS_FILE}"
        )


@config_app.command("show")
def config_show():
    """Show current configuration."""
    from termsense.config import load_config

    config = load_config()
    console.print_json(config.model_dump_json(indent=2))


if __name__ == "__main__":
    app()
