"""Host diagnostics: probe, hash, config."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.table import Table

from ._common import console, effective_config, fail


def register_probe_commands(main: click.Group) -> None:
    """Register probe, hash, and config on the main CLI group."""

    @main.command("probe")
    @click.option("--json-out", is_flag=True, help="Print results as JSON.")
    @click.pass_obj
    def probe(obj: dict, json_out: bool):
        """Check which deterministic archive backends this host offers.

        Exits 1 when the configured preference finds nothing.
        """
        from ..capability import check_backends, detect_backend

        config = effective_config(obj)
        checks = check_backends()
        selected = detect_backend(config.backend)

        if json_out:
            click.echo(json.dumps({
                "preference": config.backend.value,
                "selected": selected.name if selected else None,
                "backends": [c.__dict__ for c in checks],
            }, indent=2))
        else:
            table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
            table.add_column("Backend", style="bold")
            table.add_column("Status")
            table.add_column("Version / Note", style="dim")
            for c in checks:
                status = "[bold green]AVAILABLE[/]" if c.available else "[bold red]MISSING[/]"
                table.add_row(c.name, status, c.version or c.detail)
            console.print()
            console.print(table)
            chosen = selected.name if selected else "[red]none[/]"
            console.print(f"\nPreference [bold]{config.backend.value}[/] -> {chosen}\n")

        if selected is None:
            raise SystemExit(1)

    @main.command("hash")
    @click.argument("path", type=click.Path(path_type=Path))
    @click.option("--algorithm", "-a", default=None, help="hashlib algorithm (default from config).")
    @click.pass_obj
    def hash_cmd(obj: dict, path: Path, algorithm: Optional[str]):
        """Print the content hash of a file, as used for dedup keys."""
        from ..audit import hash_file

        algo = (algorithm or effective_config(obj).hash_algorithm).lower()
        try:
            digest = hash_file(path, algo)
        except ValueError as exc:
            fail(str(exc))
        except OSError as exc:
            fail(f"Cannot read {path}: {exc}")
        click.echo(f"{digest}  {path}")

    @main.command("config")
    @click.option("--init", "init_path", default=None, type=click.Path(dir_okay=False, path_type=Path),
                  help="Write the effective settings to this file.")
    @click.pass_obj
    def config_cmd(obj: dict, init_path: Optional[Path]):
        """Show the effective configuration, or write it out with --init."""
        from ..config import save_config

        config = effective_config(obj)
        if init_path:
            written = save_config(config, init_path)
            console.print(f"[green]Config written to[/] [cyan]{written}[/]")
            return
        click.echo(yaml.dump(config.model_dump(mode="json"), default_flow_style=False), nl=False)
