"""Remote error classification and result normalisation.

Data-channel calls either raise or return a (value, error) pair. The
resilience layer only deals in "returned a value" or "raised", so
normalize_channel_result() turns a pair carrying an error into a raised
TransientRemoteFailure.
"""

from __future__ import annotations

import enum
from typing import Any

from sipandai.errors import TransientRemoteFailure


class ErrorCategory(str, enum.Enum):
    PERMISSION = "permission"
    VALIDATION = "validation"
    NETWORK = "network"
    AUTH = "auth"
    UNKNOWN = "unknown"


# PostgreSQL / PostgREST codes surfaced by the backend.
PERMISSION_CODES = frozenset({"42501"})
VALIDATION_CODES = frozenset({"23505", "23503", "23502", "23514", "22P02"})

NETWORK_PATTERNS = ("network", "timeout", "timed out", "fetch", "connection")
AUTH_PATTERNS = ("jwt", "auth", "login", "credential", "session")
PERMISSION_PATTERNS = ("row-level security", "permission", "access denied")
VALIDATION_PATTERNS = ("constraint", "validation")


def classify_error(error: object) -> ErrorCategory:
    """Categorise an error by code, exception type and message."""
    if error is None:
        return ErrorCategory.UNKNOWN

    code = str(getattr(error, "code", "") or "")
    message = str(getattr(error, "message", "") or error).lower()

    if code in PERMISSION_CODES or _matches(message, PERMISSION_PATTERNS):
        return ErrorCategory.PERMISSION
    if code in VALIDATION_CODES or _matches(message, VALIDATION_PATTERNS):
        return ErrorCategory.VALIDATION
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if _matches(message, NETWORK_PATTERNS):
        return ErrorCategory.NETWORK
    if _matches(message, AUTH_PATTERNS):
        return ErrorCategory.AUTH
    return ErrorCategory.UNKNOWN


def is_retryable_error(error: object) -> bool:
    """Only network-class failures are worth retrying."""
    if isinstance(error, TransientRemoteFailure) and error.cause is not None:
        return classify_error(error.cause) == ErrorCategory.NETWORK
    return classify_error(error) == ErrorCategory.NETWORK


def normalize_channel_result(result: Any) -> Any:
    """Unwrap a (value, error) pair, raising if the error slot is set.

    Anything that is not a two-tuple is returned unchanged.
    """
    if isinstance(result, tuple) and len(result) == 2:
        value, error = result
        if error is not None:
            cause = error if isinstance(error, BaseException) else None
            raise TransientRemoteFailure(str(error), cause=cause)
        return value
    return result


def _matches(message: str, patterns: tuple[str, ...]) -> bool:
    return any(p in message for p in patterns)
