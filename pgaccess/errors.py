"""Error taxonomy for the data-access layer.

Every error raised by this package derives from :class:`DataAccessError` and is
tagged with an :class:`~pgaccess.core.enums.ErrorKind`, so callers can dispatch
exhaustively without ``isinstance`` ladders::

    try:
        rows = await db.query("user", QueryOptions(where={"id": 1}))
    except DataAccessError as e:
        match e.kind:
            case ErrorKind.CONNECTION | ErrorKind.TIMEOUT:
                ...  # retry later
            case ErrorKind.VALIDATION | ErrorKind.SECURITY:
                ...  # caller bug, do not retry
            case _:
                raise

The underlying exception, when there is one, is available both as ``cause``
and through normal exception chaining (``raise ... from``).
"""

from __future__ import annotations

from typing import ClassVar

from .core.enums import ErrorKind


class DataAccessError(Exception):
    kind: ClassVar[ErrorKind]

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class DatabaseConnectionError(DataAccessError):
    kind = ErrorKind.CONNECTION


class QueryTimeoutError(DataAccessError):
    kind = ErrorKind.TIMEOUT

    def __init__(self, query: str, timeout_ms: int, cause: BaseException | None = None) -> None:
        super().__init__(f"Query exceeded timeout of {timeout_ms}ms: {query}", cause)
        self.query = query
        self.timeout_ms = timeout_ms


class ValidationError(DataAccessError):
    kind = ErrorKind.VALIDATION


class SecurityError(DataAccessError):
    kind = ErrorKind.SECURITY


class CacheError(DataAccessError):
    kind = ErrorKind.CACHE


class ReplicationError(DataAccessError):
    kind = ErrorKind.REPLICATION


def cause_chain(error: BaseException) -> list[str]:
    """Render ``error`` and its ``__cause__`` chain as ``Type: message`` lines."""
    chain: list[str] = []
    current: BaseException | None = error
    while current is not None and len(chain) < 10:
        chain.append(f"{type(current).__name__}: {current}")
        current = current.__cause__
    return chain
