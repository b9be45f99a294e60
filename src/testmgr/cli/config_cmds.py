# src/testmgr/cli/config_cmds.py

from pathlib import Path

import click
import structlog
from rich.pretty import pretty_repr

from testmgr.cli.utils import (
    load_project_config,
    logging_options,
    project_options,
    resolve_project_root,
    setup_command_logging,
)
from testmgr.exceptions import ConfigurationError
from testmgr.telemetry import StructLogger
from testmgr.testing import CommandBuilder

log: StructLogger = structlog.get_logger("cli.config")


@click.group(name="config")
def config_cli():
    """Commands for inspecting and validating configuration."""
    pass


@config_cli.command(name="show")
@project_options
@logging_options
@click.pass_context
def show_config(ctx: click.Context, config_path: Path, project_root: Path | None, **kwargs):
    """Load, validate, and display the configuration."""
    setup_command_logging(ctx, kwargs)
    log.info("Executing 'config show' command", config_path=str(config_path))

    config = load_project_config(ctx, config_path)
    # Generate a rich-formatted string and echo it for testability.
    click.echo(pretty_repr(config, expand_all=True))

    builder = CommandBuilder(config.runner, resolve_project_root(config_path, project_root))
    try:
        click.echo(f"\nCommand: {builder.build().command_line}")
    except ConfigurationError as e:
        log.error("Command template cannot be rendered", error=str(e))
        click.echo(f"Error: {e}", err=True)
        ctx.exit(2)


# 🔼⚙️
