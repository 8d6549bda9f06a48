"""Error taxonomy and the retry classification table.

Every failure the engine sees ends up in one of three retry classes:

- TERMINAL: the backend (or the selector) rejected the desired state itself.
  Retrying cannot help until the spec changes.
- RETRYABLE: transient; the control loop retries with backoff.
- UNKNOWN: not in the table; handled like RETRYABLE but logged as such.

Backend clients raise ``azure.core.exceptions`` errors, the same HTTP error
vocabulary the rest of the operator uses. Clients that already know the
class may raise TerminalBackendError or RetryableBackendError directly.
"""

from __future__ import annotations

import asyncio
from enum import Enum

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError


class RetryClass(str, Enum):
    """How the control loop should treat a failure."""

    RETRYABLE = "retryable"
    TERMINAL = "terminal"
    UNKNOWN = "unknown"


class ReconcileError(Exception):
    """Base class for errors raised by the reconciliation engine."""

    pass


class ValidationError(ReconcileError):
    """Raised when the desired state has an invalid field combination.

    Never retried and never sent to the backend.
    """

    pass


class MissingIdentifierError(ValidationError):
    """Raised when reimport is selected but no backend identifier exists yet."""

    pass


class BackendError(ReconcileError):
    """Base class for classified backend failures."""

    pass


class TerminalBackendError(BackendError):
    """The backend permanently rejected the request (e.g. malformed document)."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class RetryableBackendError(BackendError):
    """A transient backend failure."""

    pass


class CallCancelledError(RetryableBackendError):
    """A backend call was cancelled by the surrounding context."""

    pass


class CallTimeoutError(RetryableBackendError):
    """A backend call exceeded the configured timeout."""

    pass


class ResourceNotFound(RetryableBackendError):
    """The backend has no resource for the desired object (yet)."""

    pass


# Backend error codes that mean the request itself is invalid
TERMINAL_ERROR_CODES = frozenset(
    {
        "BadRequestException",
        "InvalidParameterValue",
        "ValidationException",
    }
)

# HTTP statuses that mean the request itself is invalid
TERMINAL_STATUS_CODES = frozenset({400, 413, 415, 422})

# HTTP statuses worth retrying
RETRYABLE_STATUS_CODES = frozenset({401, 403, 404, 408, 409, 429})


def _error_code(error: HttpResponseError) -> str | None:
    """Extract the backend error code from an HttpResponseError, if any."""
    odata_error = getattr(error, "error", None)
    code = getattr(odata_error, "code", None)
    if code:
        return str(code)
    return None


def classify_error(error: BaseException) -> RetryClass:
    """Map an error to its retry class.

    The order of checks is the policy: engine errors first, then backend
    error codes, then HTTP status, then transport failures.

    Args:
        error: Any exception produced by a reconcile step.

    Returns:
        The retry class for the error.
    """
    if isinstance(error, ValidationError):
        return RetryClass.TERMINAL
    if isinstance(error, TerminalBackendError):
        return RetryClass.TERMINAL
    if isinstance(error, RetryableBackendError):
        return RetryClass.RETRYABLE
    if isinstance(error, asyncio.CancelledError):
        return RetryClass.RETRYABLE
    if isinstance(error, ResourceNotFoundError):
        return RetryClass.RETRYABLE

    if isinstance(error, HttpResponseError):
        if _error_code(error) in TERMINAL_ERROR_CODES:
            return RetryClass.TERMINAL
        status = error.status_code
        if status in TERMINAL_STATUS_CODES:
            return RetryClass.TERMINAL
        if status in RETRYABLE_STATUS_CODES or (status is not None and status >= 500):
            return RetryClass.RETRYABLE
        return RetryClass.UNKNOWN

    if isinstance(error, AzureError):
        # Transport level: connection, DNS, read timeouts, decode failures
        return RetryClass.RETRYABLE
    if isinstance(error, (TimeoutError, ConnectionError)):
        return RetryClass.RETRYABLE

    return RetryClass.UNKNOWN


def is_terminal(error: BaseException) -> bool:
    """Check whether an error halts reconciliation until the spec changes."""
    return classify_error(error) is RetryClass.TERMINAL
