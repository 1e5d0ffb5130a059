"""
Cloud Backup CLI — back up, list, restore and manage cloud backups.

Each command group lives in its own module and is attached to the
main Click group through a register function.

Entry point: cloudbackup.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="cloudbackup")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def main(verbose: bool):
    """Cloud Backup — keep your local data safe on a backup server.

    Backups are merged back on import, so local-only data is never lost.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .config_cmd import register_config_commands
from .remote import register_remote_commands
from .local import register_local_commands

register_config_commands(main)
register_remote_commands(main)
register_local_commands(main)
