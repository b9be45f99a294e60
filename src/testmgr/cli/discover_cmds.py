# src/testmgr/cli/discover_cmds.py

import asyncio
from pathlib import Path

import click
import structlog

from testmgr.cli.render import entity_tree
from testmgr.cli.utils import (
    get_console,
    load_project_config,
    logging_options,
    project_options,
    resolve_project_root,
    run_cli_errors,
    setup_command_logging,
)
from testmgr.runtime import TestOrchestrator
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.discover")


@click.command(name="discover")
@project_options
@click.option("--ids", "flat_ids", is_flag=True, help="Print one runnable identifier per line instead of a tree.")
@logging_options
@click.pass_context
def discover_cli(ctx: click.Context, config_path: Path, project_root: Path | None, flat_ids: bool, **kwargs):
    """Scan the project and list the tests found."""
    setup_command_logging(ctx, kwargs)
    config = load_project_config(ctx, config_path)
    root = resolve_project_root(config_path, project_root)
    log.info("Executing 'discover' command", root=str(root))

    orchestrator = TestOrchestrator(config, root)
    roots = run_cli_errors(ctx, lambda: asyncio.run(orchestrator.discover()), "discover")

    if flat_ids:
        for entity in orchestrator.discovery.iter_entities():
            if entity.kind.is_runnable:
                click.echo(entity.canonical_id)
        return

    console = get_console(ctx)
    if not roots:
        console.print(f"No tests found under {root} matching '{config.discovery.file_pattern}'.")
        return
    console.print(entity_tree(roots, title=str(root)))


# 🔼⚙️
