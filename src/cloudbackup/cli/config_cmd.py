"""Config commands: show, set-server, set-user, set-access-code, rotate-id."""

from __future__ import annotations

from pathlib import Path

import click
from rich.panel import Panel

from ..config import open_endpoint_store, resolve_collision_scope
from ..exceptions import InvalidAddressError
from ._common import build_client, console, finish, home_option, run, yes_option


def register_config_commands(main: click.Group) -> None:
    """Register the config command group."""

    @main.group()
    def config():
        """Server address, user identifier and access code."""

    @config.command("show")
    @home_option
    def config_show(home: str):
        """Show the stored endpoint configuration."""
        endpoint = open_endpoint_store(Path(home))
        try:
            scope = resolve_collision_scope(endpoint.server_address)
        except InvalidAddressError:
            scope = "[red]invalid address[/]"

        access = "[green]set[/]" if endpoint.access_credential else "[dim]not set[/]"
        console.print(Panel(
            f"Server:     [cyan]{endpoint.server_address or '(default)'}[/]\n"
            f"Scope:      {scope}\n"
            f"Identifier: [cyan]{endpoint.user_identifier or '(not set)'}[/]\n"
            f"Access:     {access}",
            title="Cloud Backup",
            border_style="cyan",
        ))

    @config.command("set-server")
    @click.argument("address")
    @home_option
    def config_set_server(address: str, home: str):
        """Store the backup server address (checked when used)."""
        open_endpoint_store(Path(home)).set_server_address(address)
        console.print(f"[green]Server address saved:[/] {address}")

    @config.command("set-user")
    @click.argument("identifier")
    @home_option
    def config_set_user(identifier: str, home: str):
        """Store the user identifier used to scope backups."""
        open_endpoint_store(Path(home)).set_user_identifier(identifier)
        console.print(f"[green]User identifier saved:[/] {identifier}")

    @config.command("set-access-code")
    @click.argument("code")
    @home_option
    def config_set_access_code(code: str, home: str):
        """Store the access code sent with every request."""
        open_endpoint_store(Path(home)).set_access_credential(code)
        console.print("[green]Access code saved.[/]")

    @config.command("rotate-id")
    @home_option
    @yes_option
    def config_rotate_id(home: str, yes: bool):
        """Generate a fresh random identifier (new backup namespace).

        Examples:

            cloudbackup config rotate-id

            cloudbackup config rotate-id --yes
        """
        client = build_client(home, assume_yes=yes)
        finish(run(client.rotate_identifier()))

    main.add_command(config)
