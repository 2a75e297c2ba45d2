"""
Cache Repository Interfaces

Abstract contract of the remote key-value store the cache core runs on.
Implementations raise ``RedisException`` subclasses on I/O failure; the
cache layer is responsible for degrading those to misses.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional, Set, Union


StoreValue = Union[bytes, str]


class KeyValueStore(ABC):
    """
    Key-value store contract.

    Provides string get/set with optional expiry, key deletion, set
    membership for tag indexes, prefix enumeration and expiry extension.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Get raw value, or None when the key is absent."""
        pass

    @abstractmethod
    async def set(
        self,
        key: str,
        value: StoreValue,
        ex: Optional[int] = None,
        nx: bool = False,
    ) -> bool:
        """Store value with optional expiry in seconds.

        With ``nx=True`` the write only happens if the key does not exist;
        the return value tells whether the write happened.
        """
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning the number removed."""
        pass

    @abstractmethod
    async def sadd(self, key: str, *members: str) -> int:
        """Add members to the set stored at key."""
        pass

    @abstractmethod
    async def smembers(self, key: str) -> Set[str]:
        """Get all members of the set stored at key."""
        pass

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> bool:
        """Set key expiry in seconds."""
        pass

    @abstractmethod
    async def remaining_ttl(self, key: str) -> int:
        """Seconds until the key expires; -1 when persistent, -2 when absent."""
        pass

    @abstractmethod
    async def persist(self, key: str) -> bool:
        """Remove the key's expiry."""
        pass

    @abstractmethod
    def scan_keys(self, pattern: str, count: int = 100) -> AsyncIterator[str]:
        """Iterate keys matching a glob pattern without blocking the store."""
        pass

    @abstractmethod
    async def info(self) -> Dict[str, Any]:
        """Server statistics."""
        pass

    async def close(self) -> None:
        """Release connections."""
        return None
