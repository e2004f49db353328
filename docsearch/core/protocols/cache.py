"""Cache protocol for dependency injection."""
from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class CacheProtocol(Protocol):
    """Key/value cache with per-entry TTL.

    Implementations must be safe for concurrent readers and writers.
    """

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None if missing or expired."""
        ...

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store a value for ttl seconds (implementation default if None)."""
        ...
