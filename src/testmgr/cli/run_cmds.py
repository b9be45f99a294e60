# src/testmgr/cli/run_cmds.py

import asyncio
from pathlib import Path

import click
import structlog
from rich.text import Text

from testmgr.cli.render import failures_table, summary_line
from testmgr.cli.utils import (
    get_console,
    load_project_config,
    logging_options,
    project_options,
    resolve_project_root,
    run_cli_errors,
    setup_command_logging,
)
from testmgr.runtime import RunSummary, TestOrchestrator
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.run")


async def _execute(orchestrator: TestOrchestrator, target: str, failed_only: bool, debug: bool) -> RunSummary | None:
    try:
        await orchestrator.discover()
        if failed_only:
            orchestrator.seed_from_history()
            return await orchestrator.run_failed()
        return await orchestrator.run(target, debug=debug)
    finally:
        await orchestrator.close()


@click.command(name="run")
@click.argument("target", required=False, default="")
@project_options
@click.option("--failed", "failed_only", is_flag=True, help="Re-run the tests that failed in the last recorded session.")
@click.option("--debug", is_flag=True, help="Run in debug mode (drops parallel and buffered output).")
@logging_options
@click.pass_context
def run_cli(
    ctx: click.Context,
    target: str,
    config_path: Path,
    project_root: Path | None,
    failed_only: bool,
    debug: bool,
    **kwargs,
):
    """
    Run TARGET (a dotted test path) or the whole suite.

    Exits 0 when every test passed, 1 on failures or cancellation and 2 when
    the configuration is invalid or the test process cannot be started.
    """
    setup_command_logging(ctx, kwargs)
    if failed_only and target:
        raise click.UsageError("TARGET cannot be combined with --failed.")

    config = load_project_config(ctx, config_path)
    root = resolve_project_root(config_path, project_root)
    log.info("Executing 'run' command", target=target or "<all>", failed=failed_only, debug=debug)

    orchestrator = TestOrchestrator(config, root)
    try:
        summary = run_cli_errors(
            ctx, lambda: asyncio.run(_execute(orchestrator, target, failed_only, debug)), "run"
        )
    except KeyboardInterrupt:
        log.warning("Run interrupted by KeyboardInterrupt (CTRL-C).")
        ctx.exit(130)

    console = get_console(ctx)
    if summary is None:
        console.print("No failed tests to re-run.")
        return

    console.print(Text(f"$ {summary.command}", style="dim"))
    table = failures_table(summary, orchestrator.catalog)
    if table is not None:
        console.print(table)
    console.print(summary_line(summary))
    if not summary.success:
        ctx.exit(1)


# 🔼⚙️
