# src/testmgr/cli/main.py

"""
Main CLI entry point for testmgr using Click.
Handles global options like logging level.
"""

from importlib.metadata import PackageNotFoundError, version

import click
import structlog

from testmgr.cli.config_cmds import config_cli
from testmgr.cli.coverage_cmds import coverage_cli
from testmgr.cli.discover_cmds import discover_cli
from testmgr.cli.history_cmds import history_cli
from testmgr.cli.run_cmds import run_cli
from testmgr.cli.utils import logging_options, setup_logging_from_context
from testmgr.cli.watch_cmds import watch_cli
from testmgr.telemetry import StructLogger

try:
    __version__ = version("testmgr")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

log: StructLogger = structlog.get_logger("cli.main")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "-V", "--version", package_name="testmgr")
@logging_options
@click.pass_context
def cli(
    ctx: click.Context,
    log_level: str | None,
    log_file: str | None,
    json_logs: bool | None,
):
    """
    Testmgr: discover, run and watch Django unittest suites.

    Configuration precedence: CLI options > Environment Variables > Config File > Defaults.
    """
    ctx.ensure_object(dict)

    ctx.obj["LOG_LEVEL"] = log_level
    ctx.obj["LOG_FILE"] = log_file
    ctx.obj["JSON_LOGS"] = json_logs if json_logs is not None else False
    ctx.obj["DEFAULT_LOG_LEVEL"] = "WARNING"

    setup_logging_from_context(ctx, default_log_level="WARNING")
    log.debug(
        "Main CLI group initialized",
        log_level=log_level,
        log_file=log_file,
        json_logs=json_logs,
    )


cli.add_command(config_cli)
cli.add_command(coverage_cli)
cli.add_command(discover_cli)
cli.add_command(history_cli)
cli.add_command(run_cli)
cli.add_command(watch_cli)

if __name__ == "__main__":
    cli()

# 🖥️⚙️
