# src/testmgr/cli/coverage_cmds.py

from pathlib import Path

import click
import structlog

from testmgr.cli.render import coverage_table
from testmgr.cli.utils import get_console, logging_options, run_cli_errors, setup_command_logging
from testmgr.coverage import DEFAULT_COVERAGE_FILE, load_coverage
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.coverage")


@click.command(name="coverage")
@click.argument(
    "report",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path(DEFAULT_COVERAGE_FILE),
    required=False,
)
@click.option("--uncovered", is_flag=True, help="Also list the uncovered line numbers of each file.")
@logging_options
@click.pass_context
def coverage_cli(ctx: click.Context, report: Path, uncovered: bool, **kwargs):
    """Summarize a Cobertura REPORT (default: coverage.xml)."""
    setup_command_logging(ctx, kwargs)
    files = run_cli_errors(ctx, lambda: load_coverage(report), "coverage")
    if not files:
        click.echo(f"No coverage data in '{report}'.")
        return
    get_console(ctx).print(coverage_table(files, show_uncovered=uncovered))


# 🔼⚙️
