"""Archive consumer commands: extract, inspect."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.table import Table

from ._common import console, effective_config, fail


def register_extract_commands(main: click.Group) -> None:
    """Register extract and inspect on the main CLI group."""

    @main.command("extract")
    @click.argument("archive", type=click.Path(path_type=Path))
    @click.argument("dest", type=click.Path(file_okay=False, path_type=Path))
    def extract(archive: Path, dest: Path):
        """Extract a .tar.gz / .tgz archive into DEST.

        Prints the archive's root folder, or DEST itself when the
        archive has several top-level entries.

        Examples:

            detarchive extract dataset.tar.gz /tmp/work
        """
        from ..errors import ArchiveError
        from ..extract import extract as do_extract

        try:
            root = do_extract(archive, dest)
        except ArchiveError as exc:
            fail(str(exc))
        console.print(f"[green]Extracted to[/] [cyan]{root}[/]")

    @main.command("inspect")
    @click.argument("archive", type=click.Path(path_type=Path))
    @click.option("--members", "-m", is_flag=True, help="Also list every member.")
    @click.option("--json-out", is_flag=True, help="Print the audit as JSON.")
    @click.pass_obj
    def inspect(obj: dict, archive: Path, members: bool, json_out: bool):
        """Audit an archive against the deterministic profile.

        Checks the gzip header, member metadata, member order, and the
        single root folder. Exits 1 when anything is off.

        Examples:

            detarchive inspect dataset.tar.gz

            detarchive inspect dataset.tar.gz --members
        """
        from ..audit import audit_archive, list_members
        from ..errors import ArchiveError
        from ..policy import NormalizationPolicy

        config = effective_config(obj)
        policy = NormalizationPolicy(
            normalize_permissions=config.normalize_permissions,
            compresslevel=config.compresslevel,
        )
        try:
            report = audit_archive(archive, policy)
            listing = list_members(archive) if members else []
        except ArchiveError as exc:
            fail(str(exc))

        if json_out:
            data = report.to_dict()
            if members:
                data["members"] = listing
            click.echo(json.dumps(data, indent=2))
        else:
            status = "[bold green]COMPLIANT[/]" if report.compliant else "[bold red]NON-COMPLIANT[/]"
            console.print(f"\n{status}  [cyan]{report.path}[/]")
            console.print(f"  Members: {report.member_count}")
            console.print(f"  Root: {', '.join(report.root_names) or '-'}")
            console.print(f"  sha256: {report.content_hash}")
            for issue in report.issues:
                console.print(f"  [red]{issue}[/]")

            if listing:
                table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
                table.add_column("Mode", style="dim")
                table.add_column("Size", justify="right")
                table.add_column("Name", style="cyan")
                for m in listing:
                    table.add_row(m["mode"], str(m["size"]), m["name"])
                console.print()
                console.print(table)
            console.print()

        if not report.compliant:
            raise SystemExit(1)
