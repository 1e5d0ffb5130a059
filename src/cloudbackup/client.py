"""
Sync client — the operations a caller can run against the backup service.

    backup         ->  serialize local state -> upload -> refresh listing
    list_files     ->  fetch the remote index -> replace listing
    import_file    ->  confirm -> fetch document -> merge into local state
    rename_file    ->  rename remotely -> rename in listing
    delete_file    ->  confirm -> delete remotely -> drop from listing
    delete_all     ->  confirm -> wipe remote index -> clear listing
    clear_local    ->  confirm -> wipe local state
    rotate_identifier -> new random identifier, fresh namespace

Every operation is a coroutine that returns exactly one OperationResult;
failures are caught at the operation boundary and never propagate.
Network calls run on worker threads so the event loop stays free while
several operations are in flight.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import quote

from pydantic import ValidationError

from .config import EndpointStore, resolve_collision_scope
from .exceptions import (
    AddressResetNotice,
    InvalidNameError,
    MissingIdentifierError,
    OpaqueRemoteError,
    RemoteError,
    SyncError,
    TransportError,
    UploadFailedError,
)
from .listing import FileListing
from .local_state import LocalStateAccessor
from .merge import MergeEngine, count_records
from .models import BackupFileRecord, ClientSettings, ErrorKind, OperationResult
from .naming import backup_file_name, format_file_size
from .transport import Transport, UploadProgress

logger = logging.getLogger("cloudbackup.client")

ConfirmPrompt = Callable[[str], Union[bool, Awaitable[bool]]]
ProgressCallback = Callable[[int], None]
Continuation = Callable[[], Awaitable[OperationResult]]

IMPORT_PROMPT = (
    "Import this backup? It will be merged into your local data "
    "and cannot be undone."
)
DELETE_PROMPT = "Delete this backup file? This cannot be undone."
DELETE_ALL_PROMPT = "Delete ALL backups stored on the server? This cannot be undone."
CLEAR_LOCAL_PROMPT = "Clear all local data and settings?"
ROTATE_PROMPT = (
    "Generate a new identifier? Backups stored under the current "
    "identifier will no longer be listed."
)

_VALIDATION_KINDS = (
    None,
    ErrorKind.MISSING_IDENTIFIER,
    ErrorKind.INVALID_ADDRESS,
    ErrorKind.INVALID_NAME,
)


@dataclass(frozen=True)
class RequestContext:
    """Everything one remote call needs, resolved when the call starts."""

    server_address: str
    user_identifier: str
    access_credential: str
    collision_scope: str

    def url(self, path: str) -> str:
        return f"{self.server_address.rstrip('/')}{path}"

    def headers(self) -> dict[str, str]:
        return {
            "accessCode": self.access_credential,
            "collisionString": self.collision_scope,
            "userName": self.user_identifier,
        }


def operation(label: str):
    """Turn every failure of a client operation into an OperationResult."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self: SyncClient, *args: Any, **kwargs: Any) -> OperationResult:
            logger.debug("%s started", label)
            try:
                result = await func(self, *args, **kwargs)
            except SyncError as exc:
                if exc.kind in _VALIDATION_KINDS:
                    logger.warning("%s: %s", label, exc.message)
                else:
                    logger.error("%s failed: %s", label, exc.message)
                return exc.to_result()
            except Exception:
                logger.exception("%s failed unexpectedly", label)
                return OperationResult.failure(
                    ErrorKind.UNEXPECTED, f"{label} failed unexpectedly"
                )
            if result.success:
                logger.info("%s: %s", label, result.message or "done")
            return result

        return wrapper

    return decorator


def _message_from(body: Any, default: str) -> str:
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message.strip():
            return message
    return default


def _parse_records(body: Any) -> list[BackupFileRecord]:
    if not isinstance(body, list):
        raise OpaqueRemoteError("Server returned an unexpected file list")
    try:
        return [BackupFileRecord.model_validate(item) for item in body]
    except ValidationError as exc:
        raise OpaqueRemoteError("Server returned an unexpected file list") from exc


class SyncClient:
    """Backup/restore client for one user session.

    Args:
        endpoint: Source of the server address, identifier and access code.
        local_state: Accessor for the device's application state.
        transport: HTTP transport. Built from ``settings`` if omitted.
        settings: Client settings (default address, timeout, retries).
        confirm: Yes/no prompt for destructive operations. May return a
            bool or an awaitable bool. Without one, destructive
            operations are always declined.
        merge_engine: Rules used to merge imported snapshots.
        clock: Wall-clock source used to name backups.
    """

    def __init__(
        self,
        endpoint: EndpointStore,
        local_state: LocalStateAccessor,
        transport: Optional[Transport] = None,
        settings: Optional[ClientSettings] = None,
        confirm: Optional[ConfirmPrompt] = None,
        merge_engine: Optional[MergeEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.endpoint = endpoint
        self.local_state = local_state
        self.settings = settings or ClientSettings()
        self.transport = transport or Transport(timeout=self.settings.timeout)
        self.confirm = confirm
        self.merge_engine = merge_engine or MergeEngine()
        self.clock = clock or datetime.now
        self.listing = FileListing()
        self.importing: set[str] = set()
        self._state_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Shared plumbing
    # ------------------------------------------------------------------

    def _request_context(self) -> RequestContext:
        """Check the endpoint and resolve the collision scope for one call.

        Raises:
            AddressResetNotice: The address was empty and has been reset.
            MissingIdentifierError: No user identifier configured.
            InvalidAddressError: The address is not an absolute URL.
        """
        config = self.endpoint.snapshot()
        if not config.server_address.strip():
            default = self.settings.default_server_address
            self.endpoint.set_server_address(default)
            raise AddressResetNotice(
                f"Backup server address has been reset to the default: {default}"
            )
        if not config.user_identifier.strip():
            raise MissingIdentifierError("User identifier must not be empty")

        scope = resolve_collision_scope(config.server_address)
        return RequestContext(
            server_address=config.server_address.strip(),
            user_identifier=config.user_identifier.strip(),
            access_credential=config.access_credential,
            collision_scope=scope,
        )

    async def _confirm(self, question: str) -> bool:
        if self.confirm is None:
            return False
        answer = self.confirm(question)
        if inspect.isawaitable(answer):
            answer = await answer
        return answer is True

    async def _call_with_retry(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run an idempotent transport call, retrying network failures."""
        attempt = 0
        while True:
            try:
                return await asyncio.to_thread(func, *args, **kwargs)
            except TransportError:
                if attempt >= self.settings.max_retries:
                    raise
                delay = self.settings.retry_backoff * (2 ** attempt)
                attempt += 1
                logger.debug(
                    "Retry %d/%d in %.1fs", attempt, self.settings.max_retries, delay
                )
                await asyncio.sleep(delay)

    async def _continue(self, then: Continuation) -> OperationResult:
        try:
            return await then()
        except Exception:
            logger.exception("Follow-up operation failed")
            return OperationResult.failure(
                ErrorKind.UNEXPECTED, "Follow-up operation failed unexpectedly"
            )

    # ------------------------------------------------------------------
    # Remote operations
    # ------------------------------------------------------------------

    @operation("Backup")
    async def backup(
        self,
        progress: Optional[ProgressCallback] = None,
        then: Optional[Continuation] = None,
        refresh: bool = True,
    ) -> OperationResult:
        """Upload the current local state as a new backup file.

        Args:
            progress: Receives upload percentages (0-100, non-decreasing)
                on the event loop thread.
            then: Continuation run after a successful upload. Its result
                is attached as ``followup``.
            refresh: When no ``then`` is given, refresh the listing
                quietly after a successful upload.

        Returns:
            OperationResult: ``data`` holds the file name and size.
        """
        ctx = self._request_context()

        state = self.local_state.read_local_state()
        content = json.dumps(state, ensure_ascii=False).encode("utf-8")
        file_name = backup_file_name(self.clock())
        size_text = format_file_size(len(content))
        logger.info("Uploading %s (%s)", file_name, size_text)

        tracker = None
        if progress is not None:
            loop = asyncio.get_running_loop()
            tracker = UploadProgress(
                lambda percent: loop.call_soon_threadsafe(progress, percent)
            )

        try:
            body = await asyncio.to_thread(
                self.transport.upload,
                ctx.url("/api/backup"),
                ctx.headers(),
                file_name,
                content,
                "Cloud backup failed",
                tracker,
            )
        except (TransportError, RemoteError) as exc:
            raise UploadFailedError(exc.message) from exc

        result = OperationResult.ok(
            _message_from(body, "Cloud backup succeeded"),
            data={"file_name": file_name, "size": len(content), "size_text": size_text},
        )
        if then is None and refresh:
            then = functools.partial(self.list_files, quiet=True)
        if then is not None:
            result.followup = await self._continue(then)
        return result

    @operation("List")
    async def list_files(self, quiet: bool = False) -> OperationResult:
        """Replace the listing with the server's file index.

        Args:
            quiet: Leave the success message empty (used after Backup).
                Failures are reported either way.
        """
        ticket = self.listing.begin()
        ctx = self._request_context()

        body = await self._call_with_retry(
            self.transport.get_json,
            ctx.url("/api/getlist"),
            ctx.headers(),
            "Failed to load the file list",
        )
        records = _parse_records(body)
        self.listing.replace(ticket, records)

        result = OperationResult.ok(
            "File list loaded", data=self.listing.sorted_records()
        )
        if quiet:
            result.message = ""
        return result

    @operation("Import")
    async def import_file(self, file_name: str) -> OperationResult:
        """Fetch a backup and merge it into the local state.

        Imports of different files may run concurrently; each one
        reads, merges and writes the local state under a lock so a
        slow import never overwrites a faster one's result.
        """
        if not await self._confirm(IMPORT_PROMPT):
            return OperationResult.notice("Import cancelled")
        ctx = self._request_context()

        if file_name in self.importing:
            return OperationResult.notice(f"{file_name} is already being imported")
        self.importing.add(file_name)
        try:
            body = await self._call_with_retry(
                self.transport.get_json,
                ctx.url("/api/import"),
                ctx.headers(),
                f"Failed to import {file_name}",
                params={"filename": file_name},
            )
            message = None
            if isinstance(body, dict) and isinstance(body.get("message"), str):
                body = dict(body)
                message = body.pop("message")

            async with self._state_lock:
                local = self.local_state.read_local_state()
                merged = self.merge_engine.merge(local, body)
                self.local_state.write_local_state(merged)
        finally:
            self.importing.discard(file_name)

        return OperationResult.ok(
            message or f"Imported {file_name}",
            data={
                "file_name": file_name,
                "records_before": count_records(local),
                "records_after": count_records(merged),
            },
        )

    @operation("Rename")
    async def rename_file(self, old_name: str, new_name: str) -> OperationResult:
        """Rename a backup file and update the listing in place."""
        ticket = self.listing.begin()
        new_name = (new_name or "").strip()
        if not new_name:
            raise InvalidNameError("File name must not be empty")
        ctx = self._request_context()

        body = await asyncio.to_thread(
            self.transport.post_json,
            ctx.url("/api/rename"),
            ctx.headers(),
            {"oldName": old_name, "newName": new_name},
            "Failed to rename file",
        )
        self.listing.rename(ticket, old_name, new_name)
        return OperationResult.ok(
            _message_from(body, "File renamed"),
            data={"old_name": old_name, "new_name": new_name},
        )

    @operation("Delete")
    async def delete_file(self, file_name: str) -> OperationResult:
        """Delete one backup file after confirmation."""
        if not await self._confirm(DELETE_PROMPT):
            return OperationResult.notice("Delete cancelled")
        ticket = self.listing.begin()
        ctx = self._request_context()

        body = await asyncio.to_thread(
            self.transport.delete,
            ctx.url(f"/api/delete/{quote(file_name, safe='')}"),
            ctx.headers(),
            f"Failed to delete {file_name}",
        )
        self.listing.remove(ticket, file_name)
        return OperationResult.ok(_message_from(body, f"Deleted {file_name}"))

    @operation("DeleteAll")
    async def delete_all(
        self, then: Optional[Continuation] = None, refresh: bool = True
    ) -> OperationResult:
        """Delete every backup in the current scope after confirmation.

        Only the HTTP status decides success. The listing is cleared
        locally, then (by default) re-read from the server so that
        files the server failed to delete show up again.
        """
        if not await self._confirm(DELETE_ALL_PROMPT):
            return OperationResult.notice("Delete all cancelled")
        ticket = self.listing.begin()
        ctx = self._request_context()

        body = await asyncio.to_thread(
            self.transport.delete,
            ctx.url("/api/deleteALL"),
            ctx.headers(),
            "Failed to delete cloud backups",
        )
        self.listing.clear(ticket)

        result = OperationResult.ok(_message_from(body, "All cloud backups deleted"))
        if then is None and refresh:
            then = functools.partial(self.list_files, quiet=True)
        if then is not None:
            result.followup = await self._continue(then)
        return result

    # ------------------------------------------------------------------
    # Local operations
    # ------------------------------------------------------------------

    @operation("ClearLocal")
    async def clear_local(self) -> OperationResult:
        """Wipe the local state after confirmation."""
        if not await self._confirm(CLEAR_LOCAL_PROMPT):
            return OperationResult.notice("Clear cancelled")
        async with self._state_lock:
            self.local_state.clear_local_state()
        return OperationResult.ok("Local data cleared")

    @operation("RotateIdentifier")
    async def rotate_identifier(self) -> OperationResult:
        """Switch to a fresh random identifier (a new backup namespace).

        Confirmation is skipped when no identifier is set yet.
        """
        if self.endpoint.user_identifier.strip():
            if not await self._confirm(ROTATE_PROMPT):
                return OperationResult.notice("Identifier unchanged")

        identifier = str(uuid.uuid4())
        self.endpoint.set_user_identifier(identifier)
        self.listing.reset()
        return OperationResult.ok(f"New identifier: {identifier}", data=identifier)

    def close(self) -> None:
        self.transport.close()
