"""
Exception hierarchy for the results service.

Every error carries a human-readable message and the HTTP status the API
layer answers with:

    ResultsError
    +-- InvalidRequest        (400, missing or malformed field)
    |   +-- InvalidTimeFormat
    |   +-- InvalidDateFormat
    |   +-- InvalidId
    +-- AuthenticationFailed  (401)
    +-- NotFound              (404)
    +-- AlreadyExists         (409)
    +-- WriteConflict         (409, compare-and-swap retries exhausted)
    +-- StoreUnavailable      (500, document store unreachable)
    +-- CacheUnavailable      (never surfaced, the cache is bypassed)

Duplicate-time writes are not errors; the upsert engine reports them as an
outcome.
"""
import logging
from contextlib import contextmanager

from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class ResultsError(Exception):
    """Base exception for all results-service errors."""

    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        self._message = message
        super().__init__(message)

    @property
    def message(self) -> str:
        return self._message


class InvalidRequest(ResultsError):
    status_code = 400


class InvalidTimeFormat(InvalidRequest):
    def __init__(self, message: str = "Invalid or missing time format") -> None:
        super().__init__(message)


class InvalidDateFormat(InvalidRequest):
    def __init__(self, message: str = "Invalid or missing date format") -> None:
        super().__init__(message)


class InvalidId(InvalidRequest):
    def __init__(self, message: str = "INVALID_ID") -> None:
        super().__init__(message)


class AuthenticationFailed(ResultsError):
    status_code = 401


class NotFound(ResultsError):
    status_code = 404

    def __init__(self, message: str = "NOT_FOUND") -> None:
        super().__init__(message)


class AlreadyExists(ResultsError):
    status_code = 409


class WriteConflict(ResultsError):
    status_code = 409

    def __init__(self, message: str = "Concurrent update in progress, retry the request") -> None:
        super().__init__(message)


class StoreUnavailable(ResultsError):
    status_code = 500

    def __init__(self, message: str = "Document store unavailable") -> None:
        super().__init__(message)


class CacheUnavailable(ResultsError):
    status_code = 500

    def __init__(self, message: str = "Cache unavailable") -> None:
        super().__init__(message)


@contextmanager
def store_errors(operation: str):
    """Turn driver failures inside *operation* into StoreUnavailable."""
    try:
        yield
    except PyMongoError as exc:
        logger.error("Document store failure during %s: %s", operation, exc)
        raise StoreUnavailable(f"Document store unavailable during {operation}") from exc
