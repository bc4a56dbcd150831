"""Abstract storage backends: uploaded bytes and object metadata."""

from abc import ABC, abstractmethod
from pathlib import Path


class StorageBackend(ABC):
    """Interface for storing uploaded file bytes."""

    @abstractmethod
    async def save(self, content: bytes, filename: str, is_admin: bool) -> Path:
        """
        Write content under the public or admin upload directory and return its path.
        filename is the final on-disk name, e.g. identifier.ext.
        """
        ...

    @abstractmethod
    async def delete(self, path: Path) -> bool:
        """Remove the file; return False when it was already gone."""
        ...

    @abstractmethod
    async def exists(self, path: Path) -> bool:
        ...

    @abstractmethod
    async def stat_size(self, path: Path) -> int:
        """Return the file size in bytes. Raises FileNotFoundError when missing."""
        ...


class MetadataStore(ABC):
    """Thin async key-value interface over the metadata store. No business logic."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Set key only when it does not exist; return whether it was set."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def keys(self, pattern: str) -> list[str]:
        ...

    @abstractmethod
    async def mget(self, keys: list[str]) -> list[str | None]:
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None
