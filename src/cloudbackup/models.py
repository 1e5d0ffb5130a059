"""
Pydantic models shared by the sync client, transport and CLI.

Endpoint settings, backup file records and the uniform result every
client operation hands back to its caller.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from . import DEFAULT_SERVER_ADDRESS


class MessageLevel(str, Enum):
    """How a result should be presented to the user."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class ErrorKind(str, Enum):
    """Categories of operation failure."""

    INVALID_ADDRESS = "InvalidAddress"
    MISSING_IDENTIFIER = "MissingIdentifier"
    INVALID_NAME = "InvalidName"
    TRANSPORT_FAILURE = "TransportFailure"
    REMOTE_ERROR = "RemoteError"
    REMOTE_ERROR_OPAQUE = "RemoteErrorOpaque"
    UPLOAD_FAILED = "UploadFailed"
    MERGE_CONFLICT = "MergeConflict"
    UNEXPECTED = "Unexpected"


class EndpointConfig(BaseModel):
    """Which server and which account a single operation talks to.

    Values are stored verbatim; validation happens when an operation
    starts, never when a value is set.
    """

    model_config = ConfigDict(frozen=True)

    server_address: str = ""
    user_identifier: str = ""
    access_credential: str = ""


class ClientSettings(BaseModel):
    """Tunable behaviour of the sync client."""

    default_server_address: str = DEFAULT_SERVER_ADDRESS
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    retry_backoff: float = Field(default=0.5, ge=0)


class BackupFileRecord(BaseModel):
    """One backup file in the remote index."""

    model_config = ConfigDict(frozen=True)

    name: str
    size: int = Field(default=0, ge=0)


class OperationResult(BaseModel):
    """Outcome of a single sync client operation.

    Attributes:
        success: Whether the operation did what it was asked to do.
        message: Short human-readable text for display.
        level: Presentation category (info/success/error).
        error_kind: Failure category, None for successes and notices.
        data: Operation-specific payload (listing, new identifier, ...).
        followup: Result of a continuation run after success, if any.
    """

    success: bool
    message: str
    level: MessageLevel
    error_kind: Optional[ErrorKind] = None
    data: Any = None
    followup: Optional[OperationResult] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> OperationResult:
        return cls(success=True, message=message, level=MessageLevel.SUCCESS, data=data)

    @classmethod
    def notice(cls, message: str, data: Any = None) -> OperationResult:
        return cls(success=False, message=message, level=MessageLevel.INFO, data=data)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> OperationResult:
        return cls(
            success=False,
            message=message,
            level=MessageLevel.ERROR,
            error_kind=kind,
        )

    @property
    def is_error(self) -> bool:
        return self.level == MessageLevel.ERROR
