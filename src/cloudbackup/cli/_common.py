"""Shared utilities for all CLI command modules.

Provides the Rich console, client construction from a home directory,
and result rendering used by every command.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Coroutine

import click
from rich.console import Console
from rich.markup import escape

from .. import BACKUP_HOME
from ..client import SyncClient
from ..config import load_settings, open_endpoint_store
from ..local_state import JsonFileStateAccessor
from ..models import MessageLevel, OperationResult

console = Console()
logger = logging.getLogger("cloudbackup.cli")

LEVEL_STYLES = {
    MessageLevel.INFO: "cyan",
    MessageLevel.SUCCESS: "green",
    MessageLevel.ERROR: "bold red",
}

home_option = click.option(
    "--home", default=BACKUP_HOME, type=click.Path(), help="Client home directory."
)
yes_option = click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")


def build_client(home: str, assume_yes: bool = False) -> SyncClient:
    """Create a SyncClient backed by the files under ``home``.

    Args:
        home: Client home directory (config.yaml, settings.yaml, state.json).
        assume_yes: Answer every confirmation prompt with yes.

    Returns:
        SyncClient: Ready-to-use client.
    """
    home_path = Path(home).expanduser()

    def confirm(question: str) -> bool:
        if assume_yes:
            return True
        return click.confirm(question, default=False)

    return SyncClient(
        endpoint=open_endpoint_store(home_path),
        local_state=JsonFileStateAccessor(home_path / "state.json"),
        settings=load_settings(home_path),
        confirm=confirm,
    )


def run(coro: Coroutine[Any, Any, OperationResult]) -> OperationResult:
    return asyncio.run(coro)


def print_result(result: OperationResult) -> None:
    """Print a result message (and a failed follow-up) in its level's colour."""
    if result.message:
        style = LEVEL_STYLES.get(result.level, "white")
        console.print(f"[{style}]{escape(result.message)}[/]")
    if result.followup is not None and result.followup.is_error:
        print_result(result.followup)


def finish(result: OperationResult) -> None:
    """Print the result and exit non-zero if it is an error."""
    print_result(result)
    if result.is_error:
        raise SystemExit(1)
