"""Error kinds for the debt worker.

Every error knows its response status and renders itself as a
``WorkerMessage`` error envelope. Field validators never raise; the
handlers raise these, and the message processor turns anything else
into an ``InternalError``.
"""

from enum import Enum
from typing import Any, Dict, Optional

from app.schemas.message import WorkerMessage


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    UNSUPPORTED_OPERATION = "unsupported_operation"
    CONFLICT = "conflict"
    INTERNAL = "internal"


class DebtWorkerError(Exception):
    """Base exception for every failure the worker reports back."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status: int = 500

    def __init__(self, message: str, errors: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors

    def to_message(self) -> WorkerMessage:
        return WorkerMessage.error_message(self.message, self.status, self.errors)


class InvalidFieldsError(DebtWorkerError):
    """One or more request fields failed validation."""

    kind = ErrorKind.VALIDATION
    status = 422

    def __init__(self, errors: Dict[str, str], message: str = "Invalid Fields"):
        super().__init__(message, dict(errors))


class AuthorizationError(DebtWorkerError):
    """The requesting user does not own the debt."""

    kind = ErrorKind.AUTHORIZATION
    status = 403

    def __init__(self, errors: Dict[str, str], message: str = "Authentication Error"):
        super().__init__(message, dict(errors))


class UnsupportedOperationError(DebtWorkerError):
    kind = ErrorKind.UNSUPPORTED_OPERATION
    status = 400

    def __init__(self, message_type: Any):
        super().__init__(f"Unsupported function type: {message_type}")
        self.message_type = message_type


class ConcurrencyConflictError(DebtWorkerError):
    """A payment kept losing the compare-and-set against concurrent payments."""

    kind = ErrorKind.CONFLICT
    status = 409

    def __init__(self, debt_id: str, attempts: int):
        super().__init__(
            "Concurrent modification",
            {"debt_id": f"Debt {debt_id} changed during {attempts} payment attempts"},
        )


class InternalError(DebtWorkerError):
    """Store, transport or unexpected failure. The cause is chained."""

    kind = ErrorKind.INTERNAL
    status = 500

    def __init__(self, detail: Any, message: str = "Unexpected error"):
        super().__init__(message, str(detail))

    @classmethod
    def from_exception(cls, exc: BaseException) -> "InternalError":
        error = cls(_describe(exc))
        error.__cause__ = exc
        return error


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__
