"""
Error taxonomy for the runtime state layer.

Every exception raised by the cache, stream and memory components derives
from :class:`RuntimeStateError` and carries an :class:`ErrorKind`, so callers
can branch on the failure class instead of matching log text.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    ALREADY_TERMINAL = "already_terminal"
    VALIDATION_FAILED = "validation_failed"
    STORAGE_FAILURE = "storage_failure"
    ADMISSION_REFUSED = "admission_refused"
    GENERATION_FAILED = "generation_failed"


class RuntimeStateError(Exception):
    """Base class for runtime state errors."""

    kind: ErrorKind = ErrorKind.NOT_FOUND

    @property
    def user_facing(self) -> bool:
        """Whether the error should surface to the end user as "try again"."""

        return self.kind in (ErrorKind.ADMISSION_REFUSED, ErrorKind.GENERATION_FAILED)


class UnknownSession(RuntimeStateError, KeyError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Stream session {request_id!r} does not exist")
        self.request_id = request_id

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])


class DuplicateSession(RuntimeStateError):
    kind = ErrorKind.DUPLICATE

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Stream session {request_id!r} already exists")
        self.request_id = request_id


class SessionAlreadyTerminal(RuntimeStateError):
    kind = ErrorKind.ALREADY_TERMINAL

    def __init__(self, request_id: str, state: str) -> None:
        super().__init__(f"Stream session {request_id!r} is already {state}")
        self.request_id = request_id
        self.state = state


class ValidationFailed(RuntimeStateError, ValueError):
    kind = ErrorKind.VALIDATION_FAILED


class StorageFailure(RuntimeStateError, OSError):
    kind = ErrorKind.STORAGE_FAILURE


class AdmissionRefused(RuntimeStateError):
    kind = ErrorKind.ADMISSION_REFUSED

    def __init__(self, client_key: str, limit: int, retry_after: float) -> None:
        super().__init__(
            f"Too many open streams for {client_key!r} (limit {limit}); retry in {retry_after:.1f}s"
        )
        self.client_key = client_key
        self.limit = limit
        self.retry_after = retry_after


class GenerationFailed(RuntimeStateError):
    kind = ErrorKind.GENERATION_FAILED


__all__ = [
    "ErrorKind",
    "RuntimeStateError",
    "UnknownSession",
    "DuplicateSession",
    "SessionAlreadyTerminal",
    "ValidationFailed",
    "StorageFailure",
    "AdmissionRefused",
    "GenerationFailed",
]
