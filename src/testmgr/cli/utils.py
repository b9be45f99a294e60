# src/testmgr/cli/utils.py

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
import structlog
from rich.console import Console

from testmgr.config import DEFAULT_CONFIG_NAME, TestmgrConfig, load_config
from testmgr.exceptions import ConfigurationError, TestmgrError
from testmgr.telemetry.logger import setup_logging as core_setup_logging
from testmgr.telemetry.logger.processors import level_number

log = structlog.get_logger("cli.utils")

LOG_LEVEL_CHOICES = click.Choice(list(logging.getLevelNamesMapping().keys()), case_sensitive=False)


def logging_options(f):
    """Decorator to add logging options to any command."""
    f = click.option(
        "-l",
        "--log-level",
        type=LOG_LEVEL_CHOICES,
        default=None,
        envvar="TESTMGR_LOG_LEVEL",
        help="Set the logging level (overrides config file).",
    )(f)
    f = click.option(
        "--log-file",
        type=click.Path(dir_okay=False, writable=True, resolve_path=True),
        default=None,
        envvar="TESTMGR_LOG_FILE",
        help="Path to write logs to a file (JSON format).",
    )(f)
    f = click.option(
        "--json-logs",
        is_flag=True,
        default=None,
        envvar="TESTMGR_JSON_LOGS",
        help="Output console logs as JSON.",
    )(f)
    return f


def project_options(f):
    """Decorator adding the config file and project root options."""
    f = click.option(
        "-c",
        "--config-path",
        type=click.Path(file_okay=True, dir_okay=False, path_type=Path),
        default=Path(DEFAULT_CONFIG_NAME),
        show_default=True,
        envvar="TESTMGR_CONF",
        help="Path to the testmgr configuration file (env var TESTMGR_CONF). Defaults apply when it is missing.",
        show_envvar=True,
    )(f)
    f = click.option(
        "-r",
        "--root",
        "project_root",
        type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
        default=None,
        help="Project root. Defaults to the directory holding the config file.",
    )(f)
    return f


def setup_logging_from_context(
    ctx: click.Context,
    local_log_level: str | None = None,
    local_log_file: str | None = None,
    local_json_logs: bool | None = None,
    default_log_level: str = "INFO",
    headless_mode: bool = False,
) -> None:
    """
    Setup logging using context values, allowing local overrides.
    """
    log_level_str = local_log_level or ctx.obj.get("LOG_LEVEL") or default_log_level
    log_file_path = local_log_file or ctx.obj.get("LOG_FILE")
    use_json_logs = local_json_logs if local_json_logs is not None else ctx.obj.get("JSON_LOGS", False)

    numeric_level = level_number(log_level_str)

    core_setup_logging(
        level=numeric_level,
        json_logs=use_json_logs,
        log_file=log_file_path,
        headless_mode=headless_mode,
    )

    log.debug(
        "CLI logging initialized via utils",
        level=logging.getLevelName(numeric_level),
        file=log_file_path or "console",
        json=use_json_logs,
        headless=headless_mode,
    )


def setup_command_logging(ctx: click.Context, kwargs: dict[str, Any], headless_mode: bool = False) -> None:
    setup_logging_from_context(
        ctx,
        local_log_level=kwargs.get("log_level"),
        local_log_file=kwargs.get("log_file"),
        local_json_logs=kwargs.get("json_logs"),
        default_log_level=ctx.obj.get("DEFAULT_LOG_LEVEL", "WARNING"),
        headless_mode=headless_mode,
    )


def resolve_project_root(config_path: Path, project_root: Path | None) -> Path:
    if project_root is not None:
        return project_root.resolve()
    return config_path.resolve().parent


def load_project_config(ctx: click.Context, config_path: Path) -> TestmgrConfig:
    """Loads the configuration or exits with status 2 and the error on stderr."""
    try:
        return load_config(config_path)
    except ConfigurationError as e:
        log.error("Failed to load or validate configuration", error=str(e))
        click.echo(f"Error: Configuration problem in '{config_path}':\n{e}", err=True)
        ctx.exit(2)


def get_console(ctx: click.Context) -> Console:
    console = ctx.obj.get("CONSOLE")
    if console is None:
        console = Console(highlight=False, soft_wrap=True)
        ctx.obj["CONSOLE"] = console
    return console


def run_cli_errors(ctx: click.Context, action: Callable[[], Any], command: str) -> Any:
    """Runs ``action``, mapping testmgr errors to exit status 2 and a message on stderr."""
    try:
        return action()
    except TestmgrError as e:
        log.error(f"'{command}' failed", error=str(e))
        click.echo(f"Error: {e}", err=True)
        ctx.exit(2)


# ⚙️🛠️
