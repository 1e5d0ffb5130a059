"""
Merge engine — fold a remote snapshot into the local one.

The one promise: nothing that exists locally is lost. Mappings keep all
local keys, lists keep all local items. Where both sides carry a value
the rules below decide which one the merged snapshot shows:

    mapping + mapping            ->  merged key by key
    list of records with ids     ->  union by id (local order first)
    any other list               ->  append-only union by value
    scalar + scalar              ->  last write wins
    mismatched types             ->  local value kept

"Last write" uses a timestamp field when both enclosing records have
one; otherwise the incoming remote value wins.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from .exceptions import MergeConflictError

Snapshot = dict[str, Any]

DEFAULT_ID_KEYS = ("id",)
DEFAULT_TIMESTAMP_KEYS = ("lastUpdateTime", "updatedAt", "updated_at")


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


class MergeEngine:
    """Deterministic, side-effect free snapshot merger.

    Args:
        id_keys: Field names that identify a record inside a list.
        timestamp_keys: Field names holding a record's last-modified
            time, compared to settle scalar conflicts.
    """

    def __init__(
        self,
        id_keys: Sequence[str] = DEFAULT_ID_KEYS,
        timestamp_keys: Sequence[str] = DEFAULT_TIMESTAMP_KEYS,
    ):
        self.id_keys = tuple(id_keys)
        self.timestamp_keys = tuple(timestamp_keys)

    def merge(self, local: Mapping[str, Any], remote: Any) -> Snapshot:
        """Merge ``remote`` into a copy of ``local``.

        Args:
            local: Current local snapshot. Not modified.
            remote: Incoming snapshot, as a mapping or as JSON text.

        Returns:
            dict: A new snapshot containing every local record.

        Raises:
            MergeConflictError: If ``remote`` is not a JSON object.
        """
        remote = self._coerce_remote(remote)
        return self._merge_mappings(local or {}, remote, remote_newer=True)

    def _coerce_remote(self, remote: Any) -> Mapping[str, Any]:
        if isinstance(remote, (bytes, bytearray)):
            try:
                remote = remote.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise MergeConflictError("Backup file is not valid UTF-8") from exc
        if isinstance(remote, str):
            try:
                remote = json.loads(remote)
            except ValueError as exc:
                raise MergeConflictError("Backup file is not valid JSON") from exc
        if not isinstance(remote, Mapping):
            raise MergeConflictError(
                f"Backup file has an unexpected layout ({type(remote).__name__})"
            )
        return remote

    def _timestamp(self, record: Mapping[str, Any]) -> Optional[Any]:
        for key in self.timestamp_keys:
            value = record.get(key)
            if value is not None:
                return value
        return None

    def _remote_is_newer(
        self, local: Mapping[str, Any], remote: Mapping[str, Any], inherited: bool
    ) -> bool:
        local_ts = self._timestamp(local)
        remote_ts = self._timestamp(remote)
        if local_ts is None or remote_ts is None:
            return inherited
        try:
            return remote_ts >= local_ts
        except TypeError:
            return inherited

    def _merge_mappings(
        self,
        local: Mapping[str, Any],
        remote: Mapping[str, Any],
        remote_newer: bool,
    ) -> Snapshot:
        remote_newer = self._remote_is_newer(local, remote, remote_newer)
        merged: Snapshot = {key: copy.deepcopy(value) for key, value in local.items()}
        for key, remote_value in remote.items():
            if key in local:
                merged[key] = self._merge_values(local[key], remote_value, remote_newer)
            else:
                merged[key] = copy.deepcopy(remote_value)
        return merged

    def _merge_values(self, local: Any, remote: Any, remote_newer: bool) -> Any:
        if local is None:
            return copy.deepcopy(remote)
        if isinstance(local, Mapping) and isinstance(remote, Mapping):
            return self._merge_mappings(local, remote, remote_newer)
        if isinstance(local, list) and isinstance(remote, list):
            return self._merge_lists(local, remote, remote_newer)
        if isinstance(local, (Mapping, list)) or isinstance(remote, (Mapping, list)):
            return copy.deepcopy(local)
        if remote is None:
            return local
        return copy.deepcopy(remote) if remote_newer else local

    def _record_id(self, item: Any) -> Optional[str]:
        if not isinstance(item, Mapping):
            return None
        for key in self.id_keys:
            if item.get(key) is not None:
                return f"{key}={_canonical(item[key])}"
        return None

    def _merge_lists(self, local: list, remote: list, remote_newer: bool) -> list:
        local_ids = [self._record_id(item) for item in local]
        remote_ids = [self._record_id(item) for item in remote]
        if all(local_ids) and all(remote_ids):
            return self._merge_records(local, remote, local_ids, remote_ids, remote_newer)

        merged = copy.deepcopy(local)
        seen = {_canonical(item) for item in local}
        for item in remote:
            key = _canonical(item)
            if key not in seen:
                seen.add(key)
                merged.append(copy.deepcopy(item))
        return merged

    def _merge_records(
        self,
        local: list,
        remote: list,
        local_ids: list,
        remote_ids: list,
        remote_newer: bool,
    ) -> list:
        remote_by_id: dict[str, Any] = {}
        for record_id, item in zip(remote_ids, remote):
            remote_by_id.setdefault(record_id, item)

        merged = []
        for record_id, item in zip(local_ids, local):
            if record_id in remote_by_id:
                merged.append(
                    self._merge_mappings(item, remote_by_id[record_id], remote_newer)
                )
            else:
                merged.append(copy.deepcopy(item))

        known = set(local_ids)
        for record_id, item in zip(remote_ids, remote):
            if record_id not in known:
                known.add(record_id)
                merged.append(copy.deepcopy(item))
        return merged


_default_engine = MergeEngine()


def merge(local: Mapping[str, Any], remote: Any) -> Snapshot:
    """Merge with the default rules. See :class:`MergeEngine`."""
    return _default_engine.merge(local, remote)


def count_records(value: Any) -> int:
    """Count mapping entries and list items, recursively."""
    if isinstance(value, Mapping):
        return len(value) + sum(count_records(v) for v in value.values())
    if isinstance(value, list):
        return len(value) + sum(count_records(v) for v in value)
    return 0
