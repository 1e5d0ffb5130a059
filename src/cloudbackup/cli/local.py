"""Local data commands: clear-local."""

from __future__ import annotations

import click

from ._common import build_client, finish, home_option, run, yes_option


def register_local_commands(main: click.Group) -> None:
    """Register commands that only touch local data."""

    @main.command("clear-local")
    @home_option
    @yes_option
    def clear_local(home: str, yes: bool):
        """Erase all local data and settings."""
        client = build_client(home, assume_yes=yes)
        finish(run(client.clear_local()))
