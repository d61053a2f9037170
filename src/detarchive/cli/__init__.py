"""
detarchive CLI — build, verify, extract, and inspect deterministic archives.

This package organizes the CLI into modular command groups. The main
Click group is defined here and every module registers its commands
through a register function.

Entry point: detarchive.cli:main
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import click

from .. import __version__
from ..config import load_config


@click.group()
@click.version_option(version=__version__, prog_name="detarchive")
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="Config file (default: $DETARCHIVE_HOME/config.yaml).")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging on stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], verbose: bool):
    """detarchive — deterministic content-addressable archives.

    Same tree in, same bytes out, same hash every time.
    """
    config = load_config(Path(config_path) if config_path else None)
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, config.log_level, logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    ctx.obj = {"config": config, "config_path": config_path}


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .build import register_build_commands
from .extract_cmd import register_extract_commands
from .probe import register_probe_commands

register_build_commands(main)
register_extract_commands(main)
register_probe_commands(main)
