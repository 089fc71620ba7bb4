"""
VFurniture — core/retry.py
─────────────────────────────────────────────────────────────────
Retry wrapper for read-only catalog queries.

    result = await fetch_with_retry(lambda: list_categories(db))
    if result.success:
        return result.data
    return []          # listings degrade to empty, never 5xx

Only transient failures are retried:

    ErrorKind.CONNECTION_REFUSED    ConnectionRefusedError
    ErrorKind.TIMEOUT               TimeoutError, "database is locked"
    ErrorKind.NETWORK_UNAVAILABLE   other ConnectionError / OSError,
                                    "unable to open database file"
    ErrorKind.PERMANENT             everything else → returned at once

Backoff: base_delay * 2^(attempt-1) → 1s, 2s, 4s…
─────────────────────────────────────────────────────────────────
"""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger("vfurniture.retry")

DEFAULT_ATTEMPTS   = 3
DEFAULT_BASE_DELAY = 1.0


class ErrorKind(str, Enum):
    NETWORK_UNAVAILABLE = "network_unavailable"
    TIMEOUT             = "timeout"
    CONNECTION_REFUSED  = "connection_refused"
    PERMANENT           = "permanent"

    @property
    def is_transient(self) -> bool:
        return self is not ErrorKind.PERMANENT


# Driver messages for sqlite3.OperationalError
_SQLITE_TIMEOUT_MARKERS = ("database is locked", "database table is locked", "database is busy")
_SQLITE_UNAVAILABLE_MARKERS = ("unable to open database file", "disk i/o error")

# Last resort when the exception type says nothing
_MESSAGE_MARKERS = (
    ("econnrefused", ErrorKind.CONNECTION_REFUSED),
    ("connection refused", ErrorKind.CONNECTION_REFUSED),
    ("timeout", ErrorKind.TIMEOUT),
    ("timed out", ErrorKind.TIMEOUT),
    ("database is locked", ErrorKind.TIMEOUT),
    ("connection", ErrorKind.NETWORK_UNAVAILABLE),
)


@dataclass
class ReadResult:
    success: bool
    data:    Any = None
    error:   Optional[str] = None
    retry:   bool = False
    kind:    Optional[ErrorKind] = None
    attempts: int = 0


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception onto the closed ErrorKind set."""
    # Order matters: ConnectionRefusedError ⊂ ConnectionError ⊂ OSError,
    # TimeoutError ⊂ OSError on 3.10+
    if isinstance(exc, ConnectionRefusedError):
        return ErrorKind.CONNECTION_REFUSED
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorKind.NETWORK_UNAVAILABLE

    if isinstance(exc, sqlite3.OperationalError):
        message = str(exc).lower()
        if any(marker in message for marker in _SQLITE_TIMEOUT_MARKERS):
            return ErrorKind.TIMEOUT
        if any(marker in message for marker in _SQLITE_UNAVAILABLE_MARKERS):
            return ErrorKind.NETWORK_UNAVAILABLE
        return ErrorKind.PERMANENT

    if isinstance(exc, sqlite3.Error):
        return ErrorKind.PERMANENT

    if isinstance(exc, OSError):
        if isinstance(exc, (FileNotFoundError, PermissionError)):
            return ErrorKind.PERMANENT
        return ErrorKind.NETWORK_UNAVAILABLE

    message = str(exc).lower()
    for marker, kind in _MESSAGE_MARKERS:
        if marker in message:
            return kind
    return ErrorKind.PERMANENT


async def fetch_with_retry(
    read:       Callable[[], Awaitable[Any]],
    attempts:   int = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    sleep:      Callable[[float], Awaitable[Any]] = asyncio.sleep,
    label:      str = "read",
) -> ReadResult:
    """
    Run read() up to `attempts` times.

    Never raises for a failed read: the caller gets a ReadResult with
    success=False, the error message, and whether another attempt would
    have been made (retry).
    """
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            data = await read()
            if attempt > 1:
                logger.info(f"{label} succeeded on attempt {attempt}")
            return ReadResult(success=True, data=data, attempts=attempt)

        except Exception as e:
            kind = classify_error(e)
            logger.warning(f"{label} attempt {attempt}/{attempts} failed [{kind.value}]: {e}")

            if attempt == attempts or not kind.is_transient:
                return ReadResult(
                    success  = False,
                    error    = str(e) or e.__class__.__name__,
                    retry    = kind.is_transient and attempt < attempts,
                    kind     = kind,
                    attempts = attempt,
                )

            await sleep(base_delay * 2 ** (attempt - 1))

    # Unreachable with attempts >= 1
    return ReadResult(success=False, error="Maximum retry attempts reached", attempts=attempts)
