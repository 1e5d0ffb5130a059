"""Backup file naming and size formatting."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

_UNSAFE = re.compile(r"[/:\s]")

SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def backup_file_name(now: Optional[datetime] = None) -> str:
    """Name a backup after the wall-clock time it was taken.

    Slashes, colons and spaces become underscores, so
    2024-01-01 12:00:00 gives ``Backup-2024_01_01_12_00_00.json``.
    """
    stamp = (now or datetime.now()).strftime("%Y/%m/%d %H:%M:%S")
    return f"Backup-{_UNSAFE.sub('_', stamp)}.json"


def format_file_size(size: int) -> str:
    """Human-readable size using 1024-based units.

    Examples:
        0 -> "0 B", 1536 -> "1.5 KB", 1048576 -> "1 MB"
    """
    if size <= 0:
        return "0 B"
    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[exponent]}"
