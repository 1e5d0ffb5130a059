"""
Sync error hierarchy.

Raised inside the client, transport and merge engine, and converted to
an OperationResult at each operation boundary so nothing escapes to the
caller.
"""

from __future__ import annotations

from typing import Optional

from .models import ErrorKind, MessageLevel, OperationResult


class SyncError(Exception):
    """Base class for every failure the sync client reports."""

    kind: Optional[ErrorKind] = ErrorKind.UNEXPECTED
    level: MessageLevel = MessageLevel.ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_result(self) -> OperationResult:
        """Convert the error into the result handed back to the caller."""
        return OperationResult(
            success=False,
            message=self.message,
            level=self.level,
            error_kind=self.kind,
        )


class AddressResetNotice(SyncError):
    """The server address was empty and has been reset to the default.

    This is guidance for the user, not a failure.
    """

    kind = None
    level = MessageLevel.INFO


class InvalidAddressError(SyncError):
    kind = ErrorKind.INVALID_ADDRESS


class MissingIdentifierError(SyncError):
    kind = ErrorKind.MISSING_IDENTIFIER


class InvalidNameError(SyncError):
    kind = ErrorKind.INVALID_NAME


class TransportError(SyncError):
    """Network-level failure; no response was received."""

    kind = ErrorKind.TRANSPORT_FAILURE


class RemoteError(SyncError):
    """Non-2xx response carrying a readable message."""

    kind = ErrorKind.REMOTE_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OpaqueRemoteError(RemoteError):
    """Non-2xx response whose body could not be read as a message."""

    kind = ErrorKind.REMOTE_ERROR_OPAQUE


class UploadFailedError(SyncError):
    kind = ErrorKind.UPLOAD_FAILED


class MergeConflictError(SyncError):
    """The remote document is not structurally a state snapshot."""

    kind = ErrorKind.MERGE_CONFLICT
