from __future__ import annotations

from ...errors import DatabaseConnectionError


class PoolNotInitializedError(DatabaseConnectionError):
    """Raised when a pool is used before ``ainitialize()`` succeeded."""
