"""
Local state accessors — where the device's application state lives.

The sync client only needs three things from local storage: read the
full snapshot, write a full snapshot, and clear everything. Any backend
that provides those can be plugged in.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from . import BACKUP_HOME

logger = logging.getLogger("cloudbackup.local_state")

Snapshot = dict[str, Any]


class LocalStateAccessor(ABC):
    """Read/write access to the local application state snapshot."""

    @abstractmethod
    def read_local_state(self) -> Snapshot:
        """Return the current local snapshot."""

    @abstractmethod
    def write_local_state(self, snapshot: Snapshot) -> None:
        """Replace the local snapshot."""

    @abstractmethod
    def clear_local_state(self) -> None:
        """Remove all local state."""


class MemoryStateAccessor(LocalStateAccessor):
    """Keeps the snapshot in memory. Reads and writes are deep copies."""

    def __init__(self, initial: Optional[Snapshot] = None):
        self._state: Snapshot = copy.deepcopy(initial or {})

    def read_local_state(self) -> Snapshot:
        return copy.deepcopy(self._state)

    def write_local_state(self, snapshot: Snapshot) -> None:
        self._state = copy.deepcopy(snapshot)

    def clear_local_state(self) -> None:
        self._state = {}


class JsonFileStateAccessor(LocalStateAccessor):
    """Snapshot stored as a single JSON document on disk.

    Writes go to a temporary file in the same directory and are moved
    into place, so a crash never leaves a half-written snapshot.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = (path or Path(BACKUP_HOME) / "state.json").expanduser()

    def read_local_state(self) -> Snapshot:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Local state in {self.path} is not a JSON object")
        return data

    def write_local_state(self, snapshot: Snapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=".state-", suffix=".json", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Local state written to %s", self.path)

    def clear_local_state(self) -> None:
        self.path.unlink(missing_ok=True)
        logger.info("Local state cleared: %s", self.path)
