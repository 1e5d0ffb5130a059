"""
In-memory backup listing with start-order discipline.

Operations overlap: a List can still be in flight while a Rename lands,
and a slow Delete can finish after a DeleteAll. Each operation takes a
ticket when it starts and presents it when it wants to change the
listing:

- a List result replaces the listing unless a newer List was already
  applied or a clear happened after it started; renames and deletes
  that completed while it was in flight are replayed on top of it.
- renames and deletes apply in place unless a clear happened after
  they started.
- a clear (DeleteAll, identifier rotation) empties the listing and
  becomes a barrier for everything that started before it.

All methods are called from the event loop thread.
"""

from __future__ import annotations

import itertools
import logging
from typing import Iterable, Optional

from .models import BackupFileRecord

logger = logging.getLogger("cloudbackup.listing")

_RENAME = "rename"
_REMOVE = "remove"


class FileListing:
    """The client's view of the remote file index."""

    def __init__(self) -> None:
        self._records: list[BackupFileRecord] = []
        self._counter = itertools.count(1)
        self._barrier = 0
        self._last_replace = 0
        self._journal: list[tuple[int, str, str, Optional[str]]] = []

    def begin(self) -> int:
        """Hand out a ticket marking the start of an operation."""
        return next(self._counter)

    @property
    def records(self) -> list[BackupFileRecord]:
        return list(self._records)

    @property
    def names(self) -> list[str]:
        return [r.name for r in self._records]

    def sorted_records(self) -> list[BackupFileRecord]:
        """Records ordered by name, descending (newest backup first)."""
        return sorted(self._records, key=lambda r: r.name, reverse=True)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, name: object) -> bool:
        return any(r.name == name for r in self._records)

    def _stale(self, ticket: int) -> bool:
        return ticket < self._barrier

    def replace(self, ticket: int, records: Iterable[BackupFileRecord]) -> bool:
        """Apply an authoritative List result.

        Returns:
            bool: False if the result was superseded and dropped.
        """
        if self._stale(ticket) or ticket < self._last_replace:
            logger.debug("Dropping superseded listing (ticket %d)", ticket)
            return False

        self._records = list(records)
        self._last_replace = ticket
        for stamp, kind, name, new_name in self._journal:
            if stamp > ticket:
                self._apply(kind, name, new_name)
        self._journal = [entry for entry in self._journal if entry[0] > ticket]
        return True

    def rename(self, ticket: int, old_name: str, new_name: str) -> bool:
        """Rename a record in place after a successful remote rename."""
        if self._stale(ticket):
            logger.debug("Dropping rename of %s (ticket %d)", old_name, ticket)
            return False
        self._journal.append((self.begin(), _RENAME, old_name, new_name))
        self._apply(_RENAME, old_name, new_name)
        return True

    def remove(self, ticket: int, name: str) -> bool:
        """Drop a record after a successful remote delete."""
        if self._stale(ticket):
            logger.debug("Dropping removal of %s (ticket %d)", name, ticket)
            return False
        self._journal.append((self.begin(), _REMOVE, name, None))
        self._apply(_REMOVE, name, None)
        return True

    def clear(self, ticket: int) -> None:
        """Empty the listing; operations started before ``ticket`` lose."""
        self._records = []
        self._journal = []
        self._barrier = max(self._barrier, ticket)

    def reset(self) -> None:
        """Empty the listing and supersede everything in flight."""
        self.clear(self.begin())

    def _apply(self, kind: str, name: str, new_name: Optional[str]) -> None:
        if kind == _RENAME:
            self._records = [
                r.model_copy(update={"name": new_name}) if r.name == name else r
                for r in self._records
            ]
        else:
            self._records = [r for r in self._records if r.name != name]
