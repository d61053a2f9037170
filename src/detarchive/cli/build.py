"""Archive commands: build, verify."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.panel import Panel
from rich.table import Table

from ._common import BACKEND_CHOICE, console, effective_config, fail


def register_build_commands(main: click.Group) -> None:
    """Register build and verify on the main CLI group."""

    @main.command("build")
    @click.argument("source", type=click.Path(path_type=Path))
    @click.argument("output", type=click.Path(path_type=Path))
    @click.option("--name", "-n", default="", help="Root folder inside the archive (default: source name).")
    @click.option("--timeout", type=float, default=None, help="Give up after this many seconds.")
    @click.option("--backend", type=BACKEND_CHOICE, default=None, help="Archiving backend.")
    @click.option("--json-out", is_flag=True, help="Print the result as JSON.")
    @click.pass_obj
    def build(obj: dict, source: Path, output: Path, name: str,
              timeout: Optional[float], backend: Optional[str], json_out: bool):
        """Build a deterministic .tar.gz from a directory tree.

        Examples:

            detarchive build ./dataset dataset.tar.gz

            detarchive build ./dataset out.tgz --name GSE213366
        """
        from ..archiver import DeterministicArchiver
        from ..errors import ArchiveError
        from ..models import ArchiveRequest

        archiver = DeterministicArchiver.from_config(effective_config(obj, backend))
        try:
            request = ArchiveRequest(
                source_root=source, output_path=output, archive_name=name, timeout=timeout,
            )
            result = archiver.build(request)
        except (ArchiveError, ValidationError) as exc:
            fail(str(exc))

        if json_out:
            click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
            return

        size_kb = result.archive_size / 1024
        console.print(Panel(
            f"[bold green]Archive built[/]\n"
            f"Members: {result.member_count}\n"
            f"Content: {result.total_uncompressed_bytes} bytes\n"
            f"Size: {size_kb:.1f} KB\n"
            f"Backend: {result.backend}\n"
            f"{result.hash_algorithm}: [bold]{result.content_hash}[/]\n"
            f"Path: [cyan]{result.output_path}[/]",
            title="Build Complete",
            border_style="green",
        ))

    @main.command("verify")
    @click.argument("source", type=click.Path(path_type=Path))
    @click.option("--trials", "-t", type=int, default=None, help="Number of builds (default from config, 5).")
    @click.option("--delay", type=float, default=0.0, help="Seconds to wait between builds.")
    @click.option("--backend", type=BACKEND_CHOICE, default=None, help="Archiving backend.")
    @click.option("--json-out", is_flag=True, help="Print the report as JSON.")
    @click.pass_obj
    def verify(obj: dict, source: Path, trials: Optional[int], delay: float,
               backend: Optional[str], json_out: bool):
        """Build a tree repeatedly and confirm every hash matches.

        Exits 1 when the builds disagree.

        Examples:

            detarchive verify ./dataset

            detarchive verify ./dataset --trials 5 --delay 1
        """
        from ..archiver import DeterministicArchiver
        from ..errors import ArchiveError

        config = effective_config(obj, backend)
        archiver = DeterministicArchiver.from_config(config)
        try:
            report = archiver.check_determinism(
                source, trials=trials or config.verify_trials, delay=delay,
            )
        except (ArchiveError, ValueError) as exc:
            fail(str(exc))

        if json_out:
            data = report.model_dump(mode="json")
            data["deterministic"] = report.deterministic
            data["distinct_hashes"] = report.distinct_hashes
            click.echo(json.dumps(data, indent=2))
        else:
            table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
            table.add_column("Trial", justify="right")
            table.add_column("Hash", style="cyan")
            for i, digest in enumerate(report.hashes, 1):
                table.add_row(str(i), digest)
            console.print()
            console.print(table)
            if report.deterministic:
                console.print(f"\n[bold green]DETERMINISTIC[/] — {report.trials} identical builds\n")
            else:
                console.print(
                    f"\n[bold red]NON-DETERMINISTIC[/] — "
                    f"{len(report.distinct_hashes)} distinct hashes\n"
                )

        if not report.deterministic:
            raise SystemExit(1)
