# src/testmgr/cli/watch_cmds.py

import asyncio
import logging
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.rule import Rule

from testmgr.cli.render import failures_table, summary_line
from testmgr.cli.utils import (
    get_console,
    load_project_config,
    logging_options,
    project_options,
    resolve_project_root,
    setup_command_logging,
)
from testmgr.exceptions import TestmgrError
from testmgr.runtime import RunSummary, TestOrchestrator
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.watch")


async def _watch(orchestrator: TestOrchestrator, console: Console, initial_run: bool) -> None:
    """Runs until cancelled; every completed run is printed as it finishes."""

    def print_summary(summary: RunSummary) -> None:
        console.print(Rule(", ".join(summary.targets) or "all tests", style="dim"))
        table = failures_table(summary, orchestrator.catalog)
        if table is not None:
            console.print(table)
        console.print(summary_line(summary))

    unsubscribe = orchestrator.subscribe_runs(print_summary)
    try:
        roots = await orchestrator.discover()
        log.info("Discovery finished", roots=len(roots), emoji_key="discover")
        if initial_run:
            await orchestrator.run()
        orchestrator.enable_watch()
        console.print(f"Watching {orchestrator.project_root} for changes. Press Ctrl-C to stop.")
        await asyncio.Event().wait()
    finally:
        unsubscribe()
        await orchestrator.close()


@click.command(name="watch")
@project_options
@click.option("--initial-run/--no-initial-run", default=False, help="Run the whole suite once before watching.")
@logging_options
@click.pass_context
def watch_cli(ctx: click.Context, config_path: Path, project_root: Path | None, initial_run: bool, **kwargs):
    """Re-run affected tests whenever project files change (non-interactive mode)."""
    setup_command_logging(ctx, kwargs, headless_mode=True)
    config = load_project_config(ctx, config_path)
    root = resolve_project_root(config_path, project_root)
    log.info("Initializing watch command...", root=str(root), emoji_key="watch")

    orchestrator = TestOrchestrator(config, root)
    exit_code = 0
    try:
        asyncio.run(_watch(orchestrator, get_console(ctx), initial_run))
    except KeyboardInterrupt:
        log.warning("Shutdown initiated by KeyboardInterrupt (CTRL-C).")
        exit_code = 130
    except TestmgrError as e:
        log.error("Watch mode stopped", error=str(e))
        click.echo(f"Error: {e}", err=True)
        exit_code = 2
    except Exception:
        log.critical("Watch mode exited with an unhandled exception.", exc_info=True)
        exit_code = 1
    finally:
        logging.shutdown()

    if exit_code != 0:
        ctx.exit(exit_code)


# 🔼⚙️
