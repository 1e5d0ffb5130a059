"""Remote backup commands: push, list, import, rename, delete, delete-all."""

from __future__ import annotations

import asyncio

import click
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from ..models import OperationResult
from ..naming import format_file_size
from ._common import (
    build_client,
    console,
    finish,
    home_option,
    print_result,
    run,
    yes_option,
)


def _print_listing(result: OperationResult) -> None:
    records = result.data or []
    if not records:
        console.print("\n[dim]No cloud backups found.[/]\n")
        return

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Name", style="cyan")
    table.add_column("Size", justify="right")
    for record in records:
        table.add_row(escape(record.name), format_file_size(record.size))

    console.print(f"\n[bold]{len(records)}[/] backup(s):\n")
    console.print(table)
    console.print()


def register_remote_commands(main: click.Group) -> None:
    """Register the commands that talk to the backup server."""

    @main.command("push")
    @home_option
    def push(home: str):
        """Back up the current local data to the server.

        Examples:

            cloudbackup push
        """
        client = build_client(home)
        with Progress(
            TextColumn("[cyan]Uploading[/]"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
        ) as bar:
            task = bar.add_task("upload", total=100)
            result = run(client.backup(
                progress=lambda percent: bar.update(task, completed=percent),
            ))

        if result.success:
            console.print(
                f"[dim]{escape(result.data['file_name'])} ({result.data['size_text']})[/]"
            )
            if result.followup is not None and result.followup.success:
                _print_listing(result.followup)
        finish(result)

    @main.command("list")
    @home_option
    def list_cmd(home: str):
        """List the backups stored on the server."""
        client = build_client(home)
        result = run(client.list_files())
        if result.success:
            _print_listing(result)
        finish(result)

    @main.command("import")
    @click.argument("names", nargs=-1, required=True)
    @home_option
    @yes_option
    def import_cmd(names: tuple[str, ...], home: str, yes: bool):
        """Merge one or more backups into the local data.

        Several files are fetched concurrently and merged one at a time.

        Examples:

            cloudbackup import Backup-2024_01_01_12_00_00.json

            cloudbackup import A.json B.json --yes
        """
        client = build_client(home, assume_yes=yes)

        async def _import_all() -> list[OperationResult]:
            return await asyncio.gather(*(client.import_file(n) for n in names))

        results = asyncio.run(_import_all())
        for result in results:
            print_result(result)
            if result.success and result.data:
                console.print(
                    f"  [dim]records: {result.data['records_before']}"
                    f" -> {result.data['records_after']}[/]"
                )
        if any(r.is_error for r in results):
            raise SystemExit(1)

    @main.command("rename")
    @click.argument("old_name")
    @click.argument("new_name")
    @home_option
    def rename(old_name: str, new_name: str, home: str):
        """Rename a backup on the server."""
        client = build_client(home)
        finish(run(client.rename_file(old_name, new_name)))

    @main.command("delete")
    @click.argument("name")
    @home_option
    @yes_option
    def delete(name: str, home: str, yes: bool):
        """Delete one backup from the server."""
        client = build_client(home, assume_yes=yes)
        finish(run(client.delete_file(name)))

    @main.command("delete-all")
    @home_option
    @yes_option
    def delete_all(home: str, yes: bool):
        """Delete every backup stored under your identifier."""
        client = build_client(home, assume_yes=yes)
        finish(run(client.delete_all()))
