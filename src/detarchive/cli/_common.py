"""Shared utilities for all CLI command modules.

Provides the Rich console instance and the error exit used by every
command.
"""

from __future__ import annotations

from typing import NoReturn

import click
from rich.console import Console
from rich.markup import escape

from ..models import ArchiverConfig, BackendPreference

console = Console()


def fail(message: str) -> NoReturn:
    """Print an error in red and exit with status 1."""
    console.print(f"[red]{escape(message)}[/]")
    raise SystemExit(1)


def effective_config(obj: dict, backend: str | None = None) -> ArchiverConfig:
    """The loaded config, with a --backend override applied.

    Args:
        obj: Click context object set by the main group.
        backend: Optional backend name from the command line.

    Returns:
        ArchiverConfig: Settings for this invocation.
    """
    config: ArchiverConfig = obj["config"] if obj else ArchiverConfig()
    if backend:
        config = config.model_copy(update={"backend": BackendPreference(backend)})
    return config


BACKEND_CHOICE = click.Choice([p.value for p in BackendPreference])
