"""CLI commands for reply-guard."""

import json
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from reply_guard import __brand__, __logo__, __version__

app = typer.Typer(
    name="reply-guard",
    help=f"{__logo__} {__brand__} - Auto-retry supervisor for chat replies",
    no_args_is_help=True,
)

console = Console()


def _cli_fail(cause: str, fix: str | None = None, *, exit_code: int = 1) -> None:
    """Print a consistent CLI error block and exit."""
    console.print(f"[red]{cause}[/red]")
    if fix:
        console.print(f"[dim]Fix: {fix}[/dim]")
    raise typer.Exit(exit_code)


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} {__brand__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
):
    """reply-guard - Auto-retry supervisor for chat replies."""
    pass


@app.command("version")
def version_command():
    """Show reply-guard version."""
    console.print(f"{__logo__} {__brand__} v{__version__}")


@app.command("check")
def check(
    text: str = typer.Argument(..., help="Reply text to check"),
    tag: list[str] = typer.Option(None, "--tag", "-t", help="Content tag name (repeatable)"),
):
    """Check whether a reply carries a non-empty content tag pair."""
    from reply_guard.config.loader import load_config
    from reply_guard.guard.validity import has_valid_content

    tags = tag or load_config().validity.tags
    if has_valid_content(text, tags):
        console.print(f"[green]valid[/green] [dim]({', '.join(tags)})[/dim]")
        return
    console.print(f"[red]invalid[/red] [dim]({', '.join(tags)})[/dim]")
    raise typer.Exit(1)


@app.command("simulate")
def simulate(
    script: Path = typer.Argument(..., help="Scenario JSON file"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show guard runtime logs"),
):
    """Replay a scripted host scenario on a virtual clock."""
    from reply_guard.cli.scenario import ScenarioError, load_script, run_scenario
    from reply_guard.config.loader import load_config

    if logs:
        logger.enable("reply_guard")
    else:
        logger.disable("reply_guard")

    try:
        result = run_scenario(load_script(script), load_config())
    except ValueError as e:
        _cli_fail(f"Scenario failed: {e}", "Check the step ops and fields in the scenario file.")
        return
    finally:
        logger.enable("reply_guard")

    console.print(f"{__logo__} Replayed {script.name} over {result.elapsed_ms}ms virtual time")

    regen_times = ", ".join(f"{at}ms" for at in result.regenerations) or "-"
    console.print(f"Regenerations: [cyan]{len(result.regenerations)}[/cyan] ({regen_times})")

    if result.decisions:
        table = Table(title="Send Decisions")
        table.add_column("At", style="cyan")
        table.add_column("Text")
        table.add_column("Trusted")
        table.add_column("Decision")
        for decision in result.decisions:
            verdict = "[red]blocked[/red]" if decision.blocked else "[green]allowed[/green]"
            table.add_row(f"{decision.at_ms}ms", decision.text, "yes" if decision.trusted else "no", verdict)
        console.print(table)

    events = result.events.events
    if events:
        table = Table(title="Guard Events")
        table.add_column("#", style="dim")
        table.add_column("Kind", style="cyan")
        table.add_column("Detail")
        for number, event in enumerate(events, start=1):
            detail = ", ".join(f"{key}={value}" for key, value in event.items() if key not in {"kind", "ts"})
            table.add_row(str(number), str(event.get("kind")), detail)
        console.print(table)


# ============================================================================
# Config
# ============================================================================


config_app = typer.Typer(help="Manage configuration")
app.add_typer(config_app, name="config")


@config_app.callback(invoke_without_command=True)
def config_main(ctx: typer.Context):
    """Manage configuration."""
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(0)


@config_app.command("show")
def config_show():
    """Show the effective configuration."""
    from reply_guard.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()
    source = str(config_path) if config_path.exists() else "defaults"
    console.print(f"[dim]Source: {source}[/dim]")
    console.print_json(json.dumps(config.model_dump(by_alias=True), ensure_ascii=False))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config"),
):
    """Write a default configuration file."""
    from reply_guard.config.loader import get_config_path, save_config
    from reply_guard.config.schema import GuardConfig

    config_path = get_config_path()
    if config_path.exists() and not force:
        _cli_fail(f"Config already exists at {config_path}", "Re-run with --force to overwrite it.")
    save_config(GuardConfig(), config_path)
    console.print(f"[green]✓[/green] Created config at {config_path}")


# ============================================================================
# Events
# ============================================================================


events_app = typer.Typer(help="Inspect recorded guard events")
app.add_typer(events_app, name="events")


@events_app.callback(invoke_without_command=True)
def events_main(ctx: typer.Context):
    """Inspect recorded guard events."""
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(0)


@events_app.command("summary")
def events_summary(
    path: Path = typer.Argument(..., help="JSONL event log"),
):
    """Summarize a guard event log."""
    from reply_guard.observability.events import load_events, summarize

    if not path.exists():
        _cli_fail(f"No event log at {path}", "Set events.logPath in the config to record events.")

    summary = summarize(load_events(path))
    table = Table(title=f"Guard Events ({summary['total']})")
    table.add_column("Kind", style="cyan")
    table.add_column("Count", justify="right")
    for kind, count in summary["counts"].items():
        table.add_row(kind, str(count))
    console.print(table)
    console.print(f"Regenerations: {summary['regenerations']} (failed: {summary['regenerate_failures']})")
    console.print(f"Send block rate: {summary['send_block_rate']}%")
    if summary["slots_exhausted"]:
        console.print(f"[yellow]Slots out of retries:[/yellow] {', '.join(summary['slots_exhausted'])}")
