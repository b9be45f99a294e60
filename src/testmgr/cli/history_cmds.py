# src/testmgr/cli/history_cmds.py

from pathlib import Path

import click
import structlog

from testmgr.cli.render import aggregates_table, flaky_table, history_summary_table, sessions_table
from testmgr.cli.utils import (
    get_console,
    load_project_config,
    logging_options,
    project_options,
    resolve_project_root,
    setup_command_logging,
)
from testmgr.history import HistoryManager, JsonFileStore
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.history")


def _open_history(ctx: click.Context, kwargs: dict) -> HistoryManager:
    setup_command_logging(ctx, kwargs)
    config_path: Path = kwargs["config_path"]
    config = load_project_config(ctx, config_path)
    storage_path = config.history.storage_path
    if not storage_path.is_absolute():
        storage_path = resolve_project_root(config_path, kwargs.get("project_root")) / storage_path
    log.debug("Opening history", path=str(storage_path))
    return HistoryManager(config.history, JsonFileStore(storage_path))


limit_option = click.option("-n", "--limit", type=click.IntRange(min=1), default=10, show_default=True)


@click.group(name="history")
def history_cli():
    """Inspect the recorded test-run history."""
    pass


@history_cli.command(name="show")
@project_options
@limit_option
@logging_options
@click.pass_context
def show_history(ctx: click.Context, limit: int, **kwargs):
    """Show totals and the most recent sessions."""
    history = _open_history(ctx, kwargs)
    console = get_console(ctx)
    console.print(history_summary_table(history.summary()))
    if history.sessions:
        console.print(sessions_table(history.sessions[:limit]))


@history_cli.command(name="flaky")
@project_options
@limit_option
@logging_options
@click.pass_context
def show_flaky(ctx: click.Context, limit: int, **kwargs):
    """List tests that alternate between passing and failing."""
    history = _open_history(ctx, kwargs)
    scores = history.flaky_tests(limit)
    if not scores:
        click.echo("No flaky tests recorded.")
        return
    get_console(ctx).print(flaky_table(scores))


@history_cli.command(name="slowest")
@project_options
@limit_option
@logging_options
@click.pass_context
def show_slowest(ctx: click.Context, limit: int, **kwargs):
    """List tests by mean duration, slowest first."""
    history = _open_history(ctx, kwargs)
    get_console(ctx).print(aggregates_table("Slowest tests", history.slowest_tests(limit)))


@history_cli.command(name="failing")
@project_options
@limit_option
@logging_options
@click.pass_context
def show_failing(ctx: click.Context, limit: int, **kwargs):
    """List tests by failure rate, highest first."""
    history = _open_history(ctx, kwargs)
    failing = history.most_failing_tests(limit)
    if not failing:
        click.echo("No failures recorded.")
        return
    get_console(ctx).print(aggregates_table("Most failing tests", failing))


@history_cli.command(name="export")
@project_options
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    default=None,
    help="Write the export to a file instead of stdout.",
)
@logging_options
@click.pass_context
def export_history(ctx: click.Context, output: Path | None, **kwargs):
    """Export the history as JSON."""
    history = _open_history(ctx, kwargs)
    payload = history.export_json()
    if output is None:
        click.echo(payload)
        return
    try:
        output.write_text(payload, encoding="utf-8")
    except OSError as e:
        click.echo(f"Error: Cannot write '{output}': {e}", err=True)
        ctx.exit(2)
    log.info("History exported", path=str(output), sessions=len(history.sessions), emoji_key="history")
    click.echo(f"Exported {len(history.sessions)} session(s) to {output}")


@history_cli.command(name="clear")
@project_options
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@logging_options
@click.pass_context
def clear_history(ctx: click.Context, yes: bool, **kwargs):
    """Delete every recorded session."""
    history = _open_history(ctx, kwargs)
    if not yes:
        click.confirm(f"Delete {len(history.sessions)} recorded session(s)?", abort=True)
    history.clear()
    click.echo("History cleared.")


# 🔼⚙️
